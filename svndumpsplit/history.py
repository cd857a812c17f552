# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Index of which revisions touched which paths.

Several nodes of one revision can touch related paths (a directory copy
followed by changes inside it, say), so touches are ordered by position: the
pair (revision number, index of the node within its revision). Queries take a
revision ceiling and optionally the index of a node within that revision;
only touches strictly before that node are then considered.

The index only stores numbers and short strings, never Revision or Node
objects.
"""

import bisect
import collections
import sys

from svndumpsplit import util

Touch = collections.namedtuple('Touch', ['revnum', 'index', 'kind', 'action'])


def Position(touch):
  return (touch.revnum, touch.index)


def _Bound(revnum, before):
  return (revnum, sys.maxsize if before is None else before)


class Error(Exception):
  """Parent class for this module's errors."""


class OrderError(Error):
  """Touches were recorded out of order."""


class PathHistory(object):
  """Maps each path to the ordered list of nodes that touched it.

  Besides the touches of each path, every directory keeps the sorted list of
  revisions in which anything beneath it was touched.
  """

  def __init__(self):
    self._touches = {}
    # Subset of _touches: adds, replaces and deletes
    self._lifetime = {}
    self._beneath = {}

  def Record(self, path, revnum, kind, action=None, index=0):
    """Record that a node touched path.

    Args:
      path: the node's path
      revnum: revision number of the node
      kind: 'file', 'dir' or None if unknown
      action: the node's action; None is treated as a change
      index: position of the node within its revision

    Raises:
      OrderError: if the touch is not after every touch already recorded for
                  path
    """
    touch = Touch(revnum, index, kind, action or 'change')
    touches = self._touches.setdefault(path, [])
    if touches and Position(touches[-1]) >= Position(touch):
      raise OrderError('r%d node %d touching %s recorded after r%d node %d'
                       % (revnum, index, path, touches[-1].revnum,
                          touches[-1].index))
    touches.append(touch)
    if touch.action != 'change':
      self._lifetime.setdefault(path, []).append(touch)
    for ancestor in util.Ancestors(path):
      revnums = self._beneath.setdefault(ancestor, [])
      if not revnums or revnums[-1] != revnum:
        revnums.append(revnum)

  def TouchAtOrBefore(self, path, revnum, before=None, lifetime=False):
    """Find the latest touch of path at or before a position.

    Args:
      path: the path to look up
      revnum: revision ceiling
      before: if given, only nodes before this index in revnum count
      lifetime: if True, ignore changes and only return adds, replaces and
                deletes

    Returns:
      a Touch or None
    """
    touches = (self._lifetime if lifetime else self._touches).get(path)
    if not touches:
      return None
    i = bisect.bisect_left(touches, _Bound(revnum, before), key=Position)
    if i:
      return touches[i - 1]
    return None

  def LatestAtOrBefore(self, path, revnum, before=None):
    """Return the latest revision number touching path, up to revnum.

    If path itself was never touched, the latest revision that touched
    anything beneath it is returned instead. None means neither exists.
    """
    touch = self.TouchAtOrBefore(path, revnum, before)
    if touch is not None:
      return touch.revnum
    if path in self._touches:
      return None
    revnums = self._beneath.get(path)
    if not revnums:
      return None
    i = bisect.bisect_right(revnums, revnum)
    if i:
      return revnums[i - 1]
    return None

  def KindAt(self, path, revnum, before=None):
    """Guess the kind of path at a position.

    Returns:
      'file' or 'dir' as given by the latest touch of path, 'dir' if only
      paths beneath it were touched, or None if nothing is known or path was
      deleted
    """
    touch = self.TouchAtOrBefore(path, revnum, before)
    if touch is not None:
      if touch.action == 'delete':
        return None
      return touch.kind
    if self.LatestAtOrBefore(path, revnum, before) is not None:
      # Only directories have anything beneath them.
      return 'dir'
    return None

  def RevisionsTouching(self, path, first, last):
    """List the revisions in [first, last] touching path or anything beneath.

    Returns:
      a sorted list of revision numbers without duplicates
    """
    revnums = set()
    touches = self._touches.get(path, [])
    lo = bisect.bisect_left(touches, first, key=lambda touch: touch.revnum)
    hi = bisect.bisect_right(touches, last, key=lambda touch: touch.revnum)
    revnums.update(touch.revnum for touch in touches[lo:hi])
    beneath = self._beneath.get(path, [])
    lo = bisect.bisect_left(beneath, first)
    hi = bisect.bisect_right(beneath, last)
    revnums.update(beneath[lo:hi])
    return sorted(revnums)
