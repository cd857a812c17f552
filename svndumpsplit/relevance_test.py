# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Tests for relevance."""

import unittest

import mock

from svndumpsplit import relevance
from svndumpsplit import svndump
from svndumpsplit import test_utils
from svndumpsplit import util


def _Revisions(builder):
  return test_utils.ParseDump(builder.Build())[1]


def _Engine(builder, module='libfoo', **kwargs):
  engine = relevance.RelevanceEngine(util.ModuleFilter(module), **kwargs)
  for revision in _Revisions(builder):
    engine.Add(revision)
  engine.Finish()
  return engine


def _Kept(engine):
  return [(revision.number, [node.path
                             for node in engine.RelevantNodes(revision)])
          for revision in engine.RelevantRevisions()]


class ScenarioTest(unittest.TestCase):

  def testParentNeverCreated(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo/file.c', 'add', 'file', text='x'))
    engine = relevance.RelevanceEngine(util.ModuleFilter('libfoo'))
    revisions = _Revisions(builder)
    engine.Add(revisions[0])
    engine.Add(revisions[1])
    with self.assertRaises(relevance.UnresolvableBacktrackError) as cm:
      engine.Add(revisions[2])
    self.assertEqual(cm.exception.path, 'trunk/libfoo')
    self.assertEqual(cm.exception.revnum, 2)
    self.assertIn('trunk/libfoo@2', str(cm.exception))

  def testBranchOfModule(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir')
               .Node('trunk/libfoo/a.c', 'add', 'file', text='a')
               .Revision()
               .Node('branches/b1', 'add', 'dir', copy_from=('trunk', 2)))
    engine = _Engine(builder)
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk']),
                      (2, ['trunk/libfoo', 'trunk/libfoo/a.c']),
                      (3, ['branches/b1'])])
    # trunk was last touched in r1
    self.assertEqual(engine.CopySourceRevision(3, 0), 1)

  @mock.patch.object(relevance, 'LOGGER')
  def testModuleNeverFound(self, logger):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Node('trunk/other', 'add', 'dir'))
    engine = _Engine(builder)
    self.assertFalse(engine.matched)
    self.assertEqual(_Kept(engine), [(0, [])])
    self.assertEqual(logger.warning.call_count, 1)


class CopyTest(unittest.TestCase):

  def testFileCopiedFromOutsideTheModule(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir')
               .Node('trunk/other', 'add', 'dir')
               .Node('trunk/other/x.c', 'add', 'file', text='1')
               .Revision()
               .Node('trunk/other/x.c', 'change', 'file', text='2')
               .Revision()
               .Node('trunk/other/y.c', 'add', 'file', text='y')
               .Revision()
               .Node('trunk/libfoo/x.c', 'add', 'file',
                     copy_from=('trunk/other/x.c', 4)))
    engine = _Engine(builder)
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk']),
                      (2, ['trunk/libfoo', 'trunk/other', 'trunk/other/x.c']),
                      (3, ['trunk/other/x.c']),
                      (5, ['trunk/libfoo/x.c'])])
    self.assertEqual(engine.CopySourceRevision(5, 0), 3)

  def testDirectoryCopiedIntoTheModuleKeepsWholeTree(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Node('vendor', 'add', 'dir')
               .Revision()
               .Node('vendor/lib', 'add', 'dir')
               .Node('vendor/lib/a.c', 'add', 'file', text='a')
               .Node('vendor/lib/sub', 'add', 'dir')
               .Node('vendor/lib/sub/b.c', 'add', 'file', text='b')
               .Revision()
               .Node('vendor/lib/a.c', 'change', 'file', text='aa')
               .Revision()
               .Node('vendor/other', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir',
                     copy_from=('vendor/lib', 4)))
    engine = _Engine(builder)
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk', 'vendor']),
                      (2, ['vendor/lib', 'vendor/lib/a.c', 'vendor/lib/sub',
                           'vendor/lib/sub/b.c']),
                      (3, ['vendor/lib/a.c']),
                      (5, ['trunk/libfoo'])])

  def testPathOnlyKnownThroughCopiedAncestor(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir')
               .Node('trunk/other', 'add', 'dir')
               .Node('trunk/other/deep', 'add', 'dir')
               .Node('trunk/other/deep/x.c', 'add', 'file', text='x')
               .Revision()
               .Node('trunk/copy', 'add', 'dir', copy_from=('trunk/other', 2))
               .Revision()
               .Node('trunk/other/unrelated.c', 'add', 'file', text='u')
               .Revision()
               .Node('trunk/libfoo/x.c', 'add', 'file',
                     copy_from=('trunk/copy/deep/x.c', 4)))
    engine = _Engine(builder)
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk']),
                      (2, ['trunk/libfoo', 'trunk/other', 'trunk/other/deep',
                           'trunk/other/deep/x.c']),
                      (3, ['trunk/copy']),
                      (5, ['trunk/libfoo/x.c'])])
    # The copy source was brought in by the copy of trunk/copy
    self.assertEqual(engine.CopySourceRevision(5, 0), 3)

  def testTagOfBranch(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Node('branches', 'add', 'dir')
               .Node('tags', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir')
               .Node('trunk/libfoo/a.c', 'add', 'file', text='a')
               .Node('trunk/other', 'add', 'dir')
               .Revision()
               .Node('branches/b1', 'add', 'dir', copy_from=('trunk', 2))
               .Revision()
               .Node('branches/b1/libfoo/a.c', 'change', 'file', text='b')
               .Revision()
               .Node('tags/t1', 'add', 'dir', copy_from=('branches/b1', 4)))
    engine = _Engine(builder)
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk', 'branches', 'tags']),
                      (2, ['trunk/libfoo', 'trunk/libfoo/a.c']),
                      (3, ['branches/b1']),
                      (4, ['branches/b1/libfoo/a.c']),
                      (5, ['tags/t1'])])
    self.assertEqual(engine.CopySourceRevision(5, 0), 3)

  def testCopyFromMissingPath(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir',
                     copy_from=('trunk/nonexistent', 1)))
    with self.assertRaises(relevance.UnresolvableBacktrackError) as cm:
      _Engine(builder)
    self.assertEqual(cm.exception.path, 'trunk/nonexistent')
    self.assertEqual(cm.exception.revnum, 1)

  def testCopyFromLaterRevision(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir', copy_from=('trunk', 2)))
    with self.assertRaises(relevance.UnresolvableBacktrackError):
      _Engine(builder)


class RemovalTest(unittest.TestCase):

  def testDeleteOfKeptDirectory(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir')
               .Node('trunk/vendor', 'add', 'dir')
               .Node('trunk/vendor/v.c', 'add', 'file', text='v')
               .Node('trunk/unrelated', 'add', 'dir')
               .Revision()
               .Node('trunk/libfoo/v.c', 'add', 'file',
                     copy_from=('trunk/vendor/v.c', 2))
               .Revision()
               .Node('trunk/vendor', 'delete')
               .Revision()
               .Node('trunk/unrelated', 'delete'))
    engine = _Engine(builder)
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk']),
                      (2, ['trunk/libfoo', 'trunk/vendor',
                           'trunk/vendor/v.c']),
                      (3, ['trunk/libfoo/v.c']),
                      (4, ['trunk/vendor'])])

  def testDeleteBeforePathWasKept(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Revision()
               .Node('trunk/old', 'add', 'dir')
               .Node('trunk/old/o.c', 'add', 'file', text='o')
               .Revision()
               .Node('trunk/old/o.c', 'delete')
               .Revision()
               .Node('trunk/libfoo', 'add', 'dir', copy_from=('trunk/old', 2))
               .Revision()
               .Node('trunk/old', 'delete'))
    engine = _Engine(builder)
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk']),
                      (2, ['trunk/old', 'trunk/old/o.c']),
                      (3, ['trunk/old/o.c']),
                      (4, ['trunk/libfoo']),
                      (5, ['trunk/old'])])


class ExtrasTest(unittest.TestCase):

  def setUp(self):
    self.builder = (test_utils.DumpBuilder()
                    .Revision()
                    .Revision()
                    .Node('trunk', 'add', 'dir')
                    .Node('trunk/libfoo', 'add', 'dir')
                    .Revision()
                    .Node('trunk/placeholder', 'add', 'file', text='')
                    .Revision()
                    .Node('trunk/placeholder', 'delete')
                    .Node('trunk/ghost', 'delete'))

  def testForcedAdd(self):
    engine = _Engine(self.builder,
                     extras=[util.Extra('add', 'file', 2,
                                        'trunk/placeholder')])
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk', 'trunk/libfoo']),
                      (2, ['trunk/placeholder']),
                      # Deleting a kept path is kept too
                      (3, ['trunk/placeholder'])])

  def testForcedDeleteUsesHistoryForKind(self):
    engine = _Engine(self.builder,
                     extras=[util.Extra('delete', 'file', 3,
                                        'trunk/placeholder')])
    self.assertEqual(_Kept(engine),
                     [(0, []),
                      (1, ['trunk', 'trunk/libfoo']),
                      (2, ['trunk/placeholder']),
                      (3, ['trunk/placeholder'])])

  def testWrongKind(self):
    with self.assertRaisesRegex(relevance.UnresolvableBacktrackError,
                                'dir, but it is a file'):
      _Engine(self.builder,
              extras=[util.Extra('add', 'dir', 2, 'trunk/placeholder')])

  def testNoSuchNode(self):
    with self.assertRaises(relevance.UnresolvableBacktrackError):
      _Engine(self.builder,
              extras=[util.Extra('delete', 'file', 2, 'trunk/placeholder')])

  def testDeleteOfUnknownKind(self):
    with self.assertRaisesRegex(relevance.UnresolvableBacktrackError,
                                'file or a directory'):
      _Engine(self.builder,
              extras=[util.Extra('delete', 'file', 3, 'trunk/ghost')])

  def testPastTheEnd(self):
    with self.assertRaisesRegex(relevance.UnresolvableBacktrackError,
                                'ends at r3'):
      _Engine(self.builder, extras=[util.Extra('add', 'file', 9, 'trunk/x')])


class EngineTest(unittest.TestCase):

  def setUp(self):
    self.builder = (test_utils.DumpBuilder()
                    .Revision()
                    .Revision()
                    .Node('trunk', 'add', 'dir')
                    .Node('trunk/libfoo', 'add', 'dir')
                    .Revision()
                    .Revision()
                    .Node('trunk/libfoo/a.c', 'add', 'file', text='a'))

  def testEmptyRevisionsAreKept(self):
    self.assertEqual([number for number, _ in _Kept(_Engine(self.builder))],
                     [0, 1, 2, 3])

  def testDropEmptyRevisions(self):
    engine = _Engine(self.builder, drop_empty_revs=True)
    self.assertEqual([number for number, _ in _Kept(engine)], [0, 1, 3])

  def testRevisionZeroIsAlwaysKept(self):
    engine = _Engine(self.builder, drop_empty_revs=True)
    self.assertTrue(engine.IsRevisionRelevant(0))

  def testMarkingIsMonotone(self):
    engine = _Engine(self.builder)
    before = _Kept(engine)
    self.assertTrue(engine.IsNodeRelevant(3, 0))
    self.assertFalse(engine.MarkNode(3, 0))
    self.assertFalse(engine.MarkNode(1, 0))
    self.assertEqual(_Kept(engine), before)

  def testMarkNodeFollowsDependencies(self):
    builder = (test_utils.DumpBuilder()
               .Revision()
               .Revision()
               .Node('trunk', 'add', 'dir')
               .Node('trunk/libfoo', 'add', 'dir')
               .Node('trunk/other', 'add', 'dir')
               .Revision()
               .Node('trunk/other/o.c', 'add', 'file', text='o'))
    engine = _Engine(builder)
    self.assertFalse(engine.IsNodeRelevant(1, 2))
    self.assertTrue(engine.MarkNode(2, 0))
    # The parent directory came along
    self.assertTrue(engine.IsNodeRelevant(1, 2))

  def testSequenceViolation(self):
    builder = test_utils.DumpBuilder().Revision().Revision(number=2)
    revisions = _Revisions(builder)
    engine = relevance.RelevanceEngine(util.ModuleFilter('libfoo'))
    engine.Add(revisions[0])
    with self.assertRaisesRegex(svndump.SequenceViolationError,
                                'Have r2.*expecting r1'):
      engine.Add(revisions[1])

  def testMustStartAtZero(self):
    builder = test_utils.DumpBuilder().Revision(number=1)
    engine = relevance.RelevanceEngine(util.ModuleFilter('libfoo'))
    with self.assertRaises(svndump.SequenceViolationError):
      engine.Add(_Revisions(builder)[0])


if __name__ == '__main__':
  unittest.main()
