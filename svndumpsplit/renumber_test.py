# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Tests for renumber."""

import unittest

import mock

from svndumpsplit import relevance
from svndumpsplit import renumber
from svndumpsplit import test_utils
from svndumpsplit import util


def _BranchAfterGap():
  return (test_utils.DumpBuilder()
          .Revision()
          .Revision()
          .Node('trunk', 'add', 'dir')
          .Node('branches', 'add', 'dir')
          .Revision()
          .Node('trunk/other', 'add', 'dir')
          .Revision()
          .Node('trunk/libfoo', 'add', 'dir')
          .Node('trunk/libfoo/a.c', 'add', 'file', text='a')
          .Revision()
          .Node('branches/b1', 'add', 'dir', copy_from=('trunk', 3)))


class RenumbererTest(unittest.TestCase):

  def setUp(self):
    self.revisions = test_utils.ParseDump(_BranchAfterGap().Build())[1]
    self.engine = relevance.RelevanceEngine(util.ModuleFilter('libfoo'))
    for revision in self.revisions:
      self.engine.Add(revision)
    self.engine.Finish()
    self.renumberer = renumber.Renumberer(self.engine)
    self.renumberer.Assign()

  def testConsecutiveNumbers(self):
    self.assertEqual(self.renumberer.revmap, {0: 0, 1: 1, 3: 2, 4: 3})
    self.assertEqual([revision.new_number
                      for revision in self.engine.RelevantRevisions()],
                     [0, 1, 2, 3])
    self.assertEqual(self.revisions[3].item.headers['Revision-number'], '2')
    # r2 was dropped and keeps its number
    self.assertIsNone(self.revisions[2].new_number)
    self.assertEqual(self.renumberer.NewNumber(4), 3)

  def testUnchangedRevisionsStayClean(self):
    self.assertFalse(self.revisions[0].item.dirty)
    self.assertFalse(self.revisions[1].item.dirty)
    self.assertTrue(self.revisions[3].item.dirty)

  def testCopySourceRewritten(self):
    node = self.revisions[4].nodes[0]
    self.assertEqual(node.item.headers['Node-copyfrom-rev'], '2')
    self.assertEqual(node.copy_source_revision, 3)

  def testMapCopySource(self):
    # r2 was dropped, so trunk looked the same at r1
    self.assertEqual(self.renumberer.MapCopySource(2), 1)
    self.assertEqual(self.renumberer.MapCopySource(3), 2)
    self.assertEqual(self.renumberer.MapCopySource(3, winner=1), 2)
    self.assertEqual(self.renumberer.MapCopySource(100), 3)

  def testMapCopySourceBeforeWinner(self):
    with self.assertRaises(renumber.ConsistencyError):
      self.renumberer.MapCopySource(2, winner=2)

  def testAssignIsIdempotent(self):
    headers = [dict(revision.item.headers) for revision in self.revisions]
    node_headers = [dict(node.item.headers)
                    for revision in self.revisions for node in revision.nodes]
    self.renumberer.Assign()
    self.assertEqual(self.renumberer.revmap, {0: 0, 1: 1, 3: 2, 4: 3})
    self.assertEqual([dict(revision.item.headers)
                      for revision in self.revisions], headers)
    self.assertEqual([dict(node.item.headers) for revision in self.revisions
                      for node in revision.nodes], node_headers)


class ConsistencyTest(unittest.TestCase):

  def setUp(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir', copy_from=('trunk', 1)))
    self.revisions = test_utils.ParseDump(builder.Build())[1]
    self.engine = mock.Mock()
    self.engine.IsNodeRelevant.return_value = True

  def testCopyFromDroppedRevision(self):
    # Marking claims trunk@1 is needed, but r1 is not kept
    self.engine.RelevantRevisions.return_value = [self.revisions[0],
                                                  self.revisions[2]]
    self.engine.CopySourceRevision.return_value = 1
    with self.assertRaisesRegex(renumber.ConsistencyError, 'not kept'):
      renumber.Renumberer(self.engine).Assign()

  def testNoEarlierRevision(self):
    self.engine.RelevantRevisions.return_value = [self.revisions[2]]
    self.engine.CopySourceRevision.return_value = None
    with self.assertRaisesRegex(renumber.ConsistencyError, 'No kept revision'):
      renumber.Renumberer(self.engine).Assign()

  def testUnmarkedNodesAreIgnored(self):
    self.engine.RelevantRevisions.return_value = [self.revisions[2]]
    self.engine.IsNodeRelevant.return_value = False
    renumber.Renumberer(self.engine).Assign()
    self.assertEqual(self.revisions[2].new_number, 0)
    self.assertFalse(self.revisions[2].nodes[0].item.dirty)


if __name__ == '__main__':
  unittest.main()
