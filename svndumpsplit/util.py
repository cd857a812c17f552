# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Helper functions for svndumpsplit."""

import collections
import logging
import posixpath
import re

LOGGER = logging.getLogger(__name__)

# Top-level directories of the standard repository layout
NAMESPACES = ('trunk', 'branches', 'tags')


class Error(Exception):
  """Parent class for this module's errors."""


class InvalidModuleError(Error):
  """A module name that cannot be used to filter paths."""


class ExtrasParseError(Error):
  """A line of an extra-paths file could not be parsed."""


def Ancestors(path):
  """Generate the ancestor directories of path, nearest first.

  Example:
    Ancestors('trunk/foo/bar.c') yields 'trunk/foo', then 'trunk'.
  """
  path = posixpath.dirname(path)
  while path:
    yield path
    path = posixpath.dirname(path)


def IsNamespace(path):
  return path in NAMESPACES


def ModuleName(path):
  """Return the module a directory would be if it sat at path, else None.

  Modules are the directories immediately below trunk, branches/<name> or
  tags/<name>.
  """
  parts = path.strip('/').split('/')
  if len(parts) == 2 and parts[0] == 'trunk':
    return parts[1]
  if len(parts) == 3 and parts[0] in ('branches', 'tags'):
    return parts[2]
  return None


class ModuleFilter(object):
  """Decides whether a pathname belongs to a module.

  A module lives at trunk/<module>, branches/<branch>/<module> and
  tags/<tag>/<module>. Each pattern is split on /'s and matched one path
  component at a time, with every component regexp required to match the
  entire component.

  Included paths implicitly include their parent directories without
  including their siblings, so ternary logic is used instead of True/False.
  Values are NO (excluded), YES (in the module) and PARENT (one of the
  structural directories trunk, branches, tags, branches/<branch> and
  tags/<tag> that contain the module).

  Examples, for module foo:
    trunk/foo/bar.c: YES
    branches/1.x/foo: YES
    branches/1.x: PARENT
    tags: PARENT
    trunk/foobar: NO
    branches/1.x/bar/foo: NO
  """
  # Not included
  NO = 0
  # Structural parent of the module
  PARENT = 1
  # Part of the module
  YES = 2

  def __init__(self, module):
    """Create a new ModuleFilter.

    Args:
      module: name of the module, a single path component

    Raises:
      InvalidModuleError: if module is empty or contains a /
    """
    if not module or '/' in module.strip('/') or module in ('.', '..'):
      raise InvalidModuleError('Module must be a single path component, got %r'
                               % module)
    self.module = module.strip('/')
    name = re.escape(self.module)
    self._patterns = []
    for pattern in ('trunk', name), ('branches', '.+', name), ('tags', '.+',
                                                               name):
      self._patterns.append([re.compile(r'\A%s\Z' % regex)
                             for regex in pattern])

  def CheckPath(self, path):
    """Check if a path is in the module, excluded, or a structural parent.

    Args:
      path: a repository path

    Returns:
      YES, NO, or PARENT

    The path is normalized and split on /'s, then matched component by
    component against each pattern. A path that matches a whole pattern (or
    more) is a YES. A path that runs out of components while matching is a
    PARENT unless another pattern makes it a YES.
    """
    path = posixpath.normpath(path)
    # Normpath converts the empty string to .
    if path == '.':
      return self.NO
    parts = [part for part in path.split('/') if part]
    result = self.NO
    for pattern in self._patterns:
      if all(regex.match(part) for part, regex in zip(parts, pattern)):
        if len(parts) >= len(pattern):
          return self.YES
        result = self.PARENT
    return result

  def IsIncluded(self, path):
    return self.CheckPath(path) is self.YES

  def IsStructural(self, path):
    return self.CheckPath(path) is self.PARENT

  def ModulePath(self, path):
    """Return where the module sits below a structural directory.

    Args:
      path: a structural directory such as trunk or branches/1.x

    Returns:
      e.g. 'branches/1.x/foo' for 'branches/1.x', or None if the module cannot
      sit directly below path (for instance 'branches')
    """
    parent = path.strip('/')
    if ModuleName(parent + '/' + self.module) != self.module:
      return None
    return parent + '/' + self.module


Extra = collections.namedtuple('Extra', ['action', 'kind', 'revnum', 'path'])

_EXTRA_ACTIONS = {'+': 'add', '-': 'delete'}
_EXTRA_KINDS = {'F': 'file', 'D': 'dir'}


def ParseExtras(stream):
  """Parse a list of nodes that must be kept regardless of the module filter.

  Args:
    stream: an iterable of lines such as an open text file. Each line looks
            like '+ D 1234 trunk/foo/placeholder', i.e. + (add) or - (delete),
            F (file) or D (directory), a revision number and a path. Blank
            lines and lines starting with # are skipped.

  Returns:
    a list of Extras in file order

  Raises:
    ExtrasParseError: if a line is malformed
  """
  extras = []
  for lineno, line in enumerate(stream, 1):
    line = line.strip()
    if not line or line.startswith('#'):
      continue
    parts = line.split(None, 3)
    if (len(parts) != 4 or parts[0] not in _EXTRA_ACTIONS
        or parts[1] not in _EXTRA_KINDS or not parts[2].isdigit()):
      raise ExtrasParseError('Line %d: expected "+|- F|D REVISION PATH", got %r'
                             % (lineno, line))
    extras.append(Extra(_EXTRA_ACTIONS[parts[0]], _EXTRA_KINDS[parts[1]],
                        int(parts[2]), parts[3].strip('/')))
  LOGGER.debug('Parsed %d extra paths', len(extras))
  return extras
