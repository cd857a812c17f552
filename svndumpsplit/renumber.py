# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Renumber the kept revisions and the copy sources that refer to them."""

import bisect
import logging

LOGGER = logging.getLogger(__name__)


class Error(Exception):
  """Parent class for this module's errors."""


class ConsistencyError(Error):
  """A copy source cannot be expressed in the renumbered output."""


class Renumberer(object):
  """Assigns output revision numbers for one run.

  Attributes:
    engine: the relevance.RelevanceEngine whose marks are renumbered
    revmap: {int: int} mapping original to output revision numbers of the
            kept revisions
  """

  def __init__(self, engine):
    self.engine = engine
    self.revmap = {}
    self._kept = []

  def Assign(self):
    """Number the kept revisions 0..K-1 and rewrite their copy sources.

    Calling Assign() again on the same marks changes nothing.

    Raises:
      ConsistencyError: if a copy source would not point at an earlier output
                        revision
    """
    revisions = self.engine.RelevantRevisions()
    self._kept = [revision.number for revision in revisions]
    self.revmap = {}
    for new_number, revision in enumerate(revisions):
      self.revmap[revision.number] = new_number
      revision.SetNewNumber(new_number)
    rewritten = 0
    for revision in revisions:
      for index, node in enumerate(revision.nodes):
        if (node.copy_source_revision is None
            or not self.engine.IsNodeRelevant(revision.number, index)):
          continue
        new_rev = self.MapCopySource(
            node.copy_source_revision,
            self.engine.CopySourceRevision(revision.number, index))
        if new_rev >= revision.new_number:
          raise ConsistencyError('Copy of %s@%d in r%d would come from r%d,'
                                 ' not before its own new number r%d'
                                 % (node.copy_source_path,
                                    node.copy_source_revision,
                                    revision.number, new_rev,
                                    revision.new_number))
        if new_rev != node.copy_source_revision:
          node.RewriteCopySource(new_rev)
          rewritten += 1
    LOGGER.debug('Renumbered %d revisions, rewrote %d copy sources',
                 len(revisions), rewritten)

  def NewNumber(self, revnum):
    """Return the output number of a kept revision."""
    return self.revmap[revnum]

  def MapCopySource(self, revnum, winner=None):
    """Map the revision of a copy source to the output numbering.

    Args:
      revnum: the original copy source revision
      winner: the revision marking resolved the copy source to, if known

    Returns:
      the output number of the latest kept revision not after revnum. The
      copied path looks the same there as at revnum because every revision
      touching it in between would have been kept.

    Raises:
      ConsistencyError: if no kept revision qualifies, or the one found
                        precedes winner
    """
    i = bisect.bisect_right(self._kept, revnum)
    if not i:
      raise ConsistencyError('No kept revision at or before r%d' % revnum)
    target = self._kept[i - 1]
    if winner is not None and target < winner:
      raise ConsistencyError('Copy source at r%d resolved to r%d, which was'
                             ' not kept' % (revnum, winner))
    return self.revmap[target]
