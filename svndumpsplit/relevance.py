# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Decide which revisions and nodes of a dump belong to a module's history.

Marking starts from roots: every node inside the module, every creation or
deletion of a structural directory (trunk, branches, branches/<name>, tags,
tags/<name>) and every deletion or replacement of a path that already exists
in the output.
From each marked node the engine walks backwards so that the output can be
loaded on its own:

  - a node that is not an add needs the earlier node that last touched its
    path;
  - every node needs its parent directory;
  - a copy needs its source. Files and module directories copied from inside
    the module only need the source itself to exist. Anything else is copied
    as a whole tree, so every node beneath the source up to the copied
    revision is kept.

Locating "the earlier node that last touched a path" has to account for
paths that were never mentioned on their own because an ancestor directory
was copied in one piece. In that case the ancestor's copy is kept and the
search continues at the corresponding path below the ancestor's copy source.

Marks are only ever added, and work is processed from an explicit list
instead of by recursion, so arbitrarily long copy chains terminate without
exhausting the stack.
"""

import collections
import logging
import posixpath
import sys

from svndumpsplit import history
from svndumpsplit import svndump
from svndumpsplit import util

LOGGER = logging.getLogger(__name__)

_EXACT = 'exact'
_TREE = 'tree'

# Actions that end the life of a path
_REMOVALS = ('delete', 'replace')

# Where the state of a path at some point of the history comes from.
#   origin: the add or replace Touch that created the path or, when suffix is
#           set, the ancestor directory that was copied along with it
#   latest: the latest Touch of the path itself, not older than origin, or
#           None if the path was not touched since the ancestor copy
#   suffix: path relative to the ancestor created by origin, or None
Location = collections.namedtuple('Location', ['origin', 'latest', 'suffix'])


class Error(Exception):
  """Parent class for this module's errors."""


class UnresolvableBacktrackError(Error):
  """A path needed in the output was never created in the dump.

  Attributes:
    path: the path that could not be traced
    revnum: the revision at which it was needed
  """

  def __init__(self, path, revnum, reason):
    Error.__init__(self, 'Cannot trace %s@%d back to its creation: %s'
                   % (path, revnum, reason))
    self.path = path
    self.revnum = revnum


class RelevanceEngine(object):
  """Marks the revisions and nodes belonging to one module.

  Revisions are fed one at a time, in order, through Add(). Marking only ever
  looks backwards, so each revision is fully marked as far as the revisions
  seen so far allow. Finish() must be called after the last revision.

  Attributes:
    filter: util.ModuleFilter for the module being extracted
    drop_empty_revs: if True, revisions without nodes are not kept
    history: the history.PathHistory of all ingested revisions
    revisions: list of svndump.Revisions indexed by revision number
    matched: True once a path inside the module has been seen
  """

  def __init__(self, module_filter, extras=None, drop_empty_revs=False):
    """Create a new RelevanceEngine.

    Args:
      module_filter: a util.ModuleFilter
      extras: iterable of util.Extras naming nodes to keep unconditionally
      drop_empty_revs: if True, revisions other than r0 that carry no nodes
                       are dropped
    """
    self.filter = module_filter
    self.drop_empty_revs = drop_empty_revs
    self.history = history.PathHistory()
    self.revisions = []
    self.matched = False
    self._relevant_nodes = set()
    # (revnum, index) of a copy -> revision number the source resolved to
    self._copy_sources = {}
    # (path, origin revnum, origin index) -> highest revision expanded so far
    self._expanded = {}
    self._queued = set()
    self._work = []
    self._extras = collections.defaultdict(list)
    for extra in extras or ():
      self._extras[extra.revnum].append(extra)

  def Add(self, revision):
    """Ingest the next revision and mark whatever it makes relevant.

    Raises:
      svndump.SequenceViolationError: if revision does not follow the
                                      previously added one
      UnresolvableBacktrackError: if a node cannot be traced back to the
                                  creation of its path
    """
    expected = len(self.revisions)
    if revision.number != expected:
      raise svndump.SequenceViolationError('Have r%d at 0x%08x, expecting r%d'
                                           % (revision.number,
                                              revision.item.pos, expected))
    self.revisions.append(revision)
    revnum = revision.number
    for index, node in enumerate(revision.nodes):
      kind = node.kind
      if kind is None:
        kind = self.history.KindAt(node.path, revnum, index)
      self.history.Record(node.path, revnum, kind, node.action, index)
    if revnum == 0 or (not revision.nodes and not self.drop_empty_revs):
      self._MarkRevision(revision)
    for index, node in enumerate(revision.nodes):
      if self._IsRoot(revnum, index, node):
        self._MarkNode(revnum, index)
        self._Drain()
    for extra in self._extras.pop(revnum, ()):
      self._MarkExtra(revision, extra)
    self._Drain()

  def Finish(self):
    """Complete marking after the last revision was added.

    Deletions and replacements of paths that only became part of the output
    after their revision was added are picked up here.

    Raises:
      UnresolvableBacktrackError: if an extra names a revision past the end
                                  of the dump, or a node cannot be traced back
    """
    self._Drain()
    if self._extras:
      revnum = min(self._extras)
      raise UnresolvableBacktrackError(self._extras[revnum][0].path, revnum,
                                       'the dump ends at r%d'
                                       % (len(self.revisions) - 1))
    removals = [(revision.number, index)
                for revision in self.revisions
                for index, node in enumerate(revision.nodes)
                if node.action in _REMOVALS]
    changed = True
    while changed:
      changed = False
      for revnum, index in removals:
        if self.IsNodeRelevant(revnum, index):
          continue
        node = self.revisions[revnum].nodes[index]
        if self._ExistsInOutput(node.path, revnum, index):
          self._MarkNode(revnum, index)
          self._Drain()
          changed = True
    if not self.matched:
      LOGGER.warning('Module %s does not appear in the dump; only r0 will be'
                     ' written', self.filter.module)
    else:
      LOGGER.info('Keeping %d of %d revisions and %d nodes for module %s',
                  len(self.RelevantRevisions()), len(self.revisions),
                  len(self._relevant_nodes), self.filter.module)

  def MarkNode(self, revnum, index):
    """Mark a node and everything it depends on.

    Returns:
      False if the node was already marked, else True
    """
    changed = self._MarkNode(revnum, index)
    self._Drain()
    return changed

  def IsRevisionRelevant(self, revnum):
    return self.revisions[revnum].relevant

  def IsNodeRelevant(self, revnum, index):
    return (revnum, index) in self._relevant_nodes

  def RelevantRevisions(self):
    """List the revisions to write, in original order.

    Only r0 is returned if the module was never found.
    """
    if not self.matched:
      return self.revisions[:1]
    return [revision for revision in self.revisions if revision.relevant]

  def RelevantNodes(self, revision):
    if not self.matched:
      return []
    return [node for index, node in enumerate(revision.nodes)
            if (revision.number, index) in self._relevant_nodes]

  def CopySourceRevision(self, revnum, index):
    """Revision the copy source of a marked node resolved to, or None."""
    return self._copy_sources.get((revnum, index))

  def _Node(self, touch):
    return self.revisions[touch.revnum].nodes[touch.index]

  def _IsRoot(self, revnum, index, node):
    interest = self.filter.CheckPath(node.path)
    if interest is self.filter.YES:
      self.matched = True
      return True
    if interest is self.filter.PARENT:
      return node.action != 'change'
    return (node.action in _REMOVALS
            and self._ExistsInOutput(node.path, revnum, index))

  def _ExistsInOutput(self, path, revnum, before):
    """Check whether the nodes kept so far create path at a position."""
    while True:
      location = self._Locate(path, revnum, before)
      if location is None:
        return False
      origin = location.origin
      if not self.IsNodeRelevant(origin.revnum, origin.index):
        return False
      if location.suffix is None:
        return True
      ancestor = self._Node(origin)
      path = posixpath.join(ancestor.copy_source_path, location.suffix)
      revnum = ancestor.copy_source_revision
      before = None

  def _MarkRevision(self, revision):
    if not revision.relevant:
      revision.relevant = True
      LOGGER.debug('Keeping r%d', revision.number)

  def _MarkNode(self, revnum, index):
    key = (revnum, index)
    if key in self._relevant_nodes:
      return False
    self._relevant_nodes.add(key)
    revision = self.revisions[revnum]
    self._MarkRevision(revision)
    node = revision.nodes[index]
    LOGGER.debug('Keeping r%d %r', revnum, node)
    if node.action != 'add':
      self._Push(_EXACT, node.path, revnum, index)
    parent = posixpath.dirname(node.path)
    if parent:
      self._Push(_EXACT, parent, revnum, index)
    if node.copy_source_path is not None:
      self._FollowCopy(revnum, index, node)
    return True

  def _MarkExtra(self, revision, extra):
    for index, node in enumerate(revision.nodes):
      if node.path != extra.path or node.action != extra.action:
        continue
      kind = node.kind or self.history.KindAt(node.path, revision.number,
                                              index)
      if kind is None:
        raise UnresolvableBacktrackError(extra.path, revision.number,
                                         'cannot tell whether the forced %s'
                                         ' is of a file or a directory'
                                         % extra.action)
      if kind != extra.kind:
        raise UnresolvableBacktrackError(extra.path, revision.number,
                                         'forced %s of a %s, but it is a %s'
                                         % (extra.action, extra.kind, kind))
      LOGGER.debug('Forcing r%d %r', revision.number, node)
      self._MarkNode(revision.number, index)
      return
    raise UnresolvableBacktrackError(extra.path, revision.number,
                                     'no %s node to force' % extra.action)

  def _FollowCopy(self, revnum, index, node):
    source = node.copy_source_path
    source_rev = node.copy_source_revision
    if source_rev >= revnum:
      raise UnresolvableBacktrackError(node.path, revnum,
                                       'copied from %s@%d, which is not an'
                                       ' earlier revision'
                                       % (source, source_rev))
    location = self._Locate(source, source_rev, None)
    if location is not None:
      winner = location.latest or location.origin
      self._copy_sources[(revnum, index)] = winner.revnum
    if node.kind == 'file':
      self._Push(_EXACT, source, source_rev, None)
      return
    interest = self.filter.CheckPath(node.path)
    if interest is self.filter.PARENT:
      # Structural directories only need the module from their source.
      self._Push(_EXACT, source, source_rev, None)
      if self.filter.ModulePath(node.path) is not None:
        counterpart = posixpath.join(source, self.filter.module)
        if not self.filter.IsIncluded(counterpart):
          self._Push(_TREE, counterpart, source_rev, False)
    elif interest is self.filter.YES and self.filter.IsIncluded(source):
      self._Push(_EXACT, source, source_rev, None)
    else:
      self._Push(_TREE, source, source_rev, True)

  def _Push(self, task, path, revnum, arg):
    key = (task, path, revnum, arg)
    if key not in self._queued:
      self._queued.add(key)
      self._work.append(key)

  def _Drain(self):
    while self._work:
      task, path, revnum, arg = self._work.pop()
      if task is _EXACT:
        self._ResolveExact(path, revnum, arg)
      else:
        self._ResolveTree(path, revnum, arg)

  def _Locate(self, path, revnum, before):
    """Find where the state of path at a position comes from.

    Args:
      path: the path to look up
      revnum: revision ceiling
      before: if not None, only nodes of revnum before this index count

    Returns:
      a Location, or None if path does not exist at that position
    """
    origin = self.history.TouchAtOrBefore(path, revnum, before, lifetime=True)
    suffix = None
    for ancestor in util.Ancestors(path):
      touch = self.history.TouchAtOrBefore(ancestor, revnum, before,
                                           lifetime=True)
      if touch is not None and (origin is None or history.Position(touch) >
                                history.Position(origin)):
        origin = touch
        suffix = path[len(ancestor) + 1:]
    if origin is None or origin.action == 'delete':
      return None
    if suffix is not None and self._Node(origin).copy_source_path is None:
      # The ancestor was created empty after path last existed.
      return None
    latest = self.history.TouchAtOrBefore(path, revnum, before)
    if latest is not None and (history.Position(latest) <
                               history.Position(origin)):
      latest = None
    return Location(origin, latest, suffix)

  def _Missing(self, path, revnum, before):
    """Handle a path that does not exist where it is needed."""
    if (util.IsNamespace(path)
        and self.history.TouchAtOrBefore(path, revnum, before) is None):
      # Never created in this dump, so it predates it.
      LOGGER.debug('Assuming /%s exists before r%d', path, revnum)
      return
    raise UnresolvableBacktrackError(path, revnum,
                                     'no add or copy creates it')

  def _ResolveExact(self, path, revnum, before):
    location = self._Locate(path, revnum, before)
    if location is None:
      self._Missing(path, revnum, before)
      return
    if location.latest is not None:
      self._MarkNode(location.latest.revnum, location.latest.index)
      return
    self._MarkNode(location.origin.revnum, location.origin.index)
    ancestor = self._Node(location.origin)
    self._Push(_EXACT,
               posixpath.join(ancestor.copy_source_path, location.suffix),
               ancestor.copy_source_revision, None)

  def _ResolveTree(self, path, revnum, strict):
    location = self._Locate(path, revnum, None)
    if location is None:
      if strict:
        self._Missing(path, revnum, None)
      return
    origin = location.origin
    key = (path, origin.revnum, origin.index)
    done = self._expanded.get(key)
    if done is not None and done >= revnum:
      return
    self._expanded[key] = revnum
    self._MarkNode(origin.revnum, origin.index)
    if location.suffix is not None:
      ancestor = self._Node(origin)
      self._Push(_TREE,
                 posixpath.join(ancestor.copy_source_path, location.suffix),
                 ancestor.copy_source_revision, strict)
    if done is None:
      start = history.Position(origin)
    else:
      start = (done, sys.maxsize)
    prefix = path + '/'
    for touched in self.history.RevisionsTouching(path, origin.revnum, revnum):
      for index, node in enumerate(self.revisions[touched].nodes):
        if (touched, index) <= start:
          continue
        if node.path == path or node.path.startswith(prefix):
          self._MarkNode(touched, index)
