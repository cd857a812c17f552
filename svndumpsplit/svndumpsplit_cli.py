#!/usr/bin/env python3

# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Extract the history of one module from an SVN dump file.

This script reads an SVN dump file of a repository using the standard
trunk/branches/tags layout and writes a smaller dump file holding only the
history of one module, i.e. of trunk/MODULE, branches/*/MODULE and
tags/*/MODULE. Loading the result into an empty repository with
svnadmin load recreates exactly that history, including every branch and tag
that touched the module.

Dependencies:
- Python v3.10 or higher
- PyYAML (only used by --metadata)

What is kept:
  Every change inside the module is kept. So is everything the loader needs
  to replay those changes: the creation of trunk, branches, tags and of every
  branch and tag, the parent directories of kept paths, and the sources of
  copies. When a directory is copied into the module from elsewhere, the
  whole history of the copied directory up to the copied revision is kept so
  that the copy brings along the same files as it originally did. Deletions
  and replacements of kept paths are kept as well.

  Revision 0 is always written. Kept revisions are renumbered 0, 1, 2, ...
  in their original order and every copy source is rewritten to the new
  numbers. Content is copied byte for byte; only the Revision-number and
  Node-copyfrom-rev headers are ever rewritten.

  If the module never appears in the dump, a warning is logged and the
  output only holds revision 0.

Extra paths (--extra):
  Some nodes cannot be recognized as belonging to the module, for instance
  placeholder files that external knowledge says must be there. They can be
  listed in a file, one per line:
    + D 1234 trunk/foo/placeholder-dir
    - F 1300 trunk/foo/placeholder-file
  '+' keeps the add and '-' the delete of the path in the given revision,
  'D' and 'F' say whether the path is a directory or a file. Blank lines and
  lines starting with # are ignored. The run fails if no such node exists.

Metadata cache (--metadata):
  Reading the headers of a huge dump takes a while. With --metadata FILE the
  positions and headers of all items are saved to FILE (as YAML) after the
  first successful run and loaded from there on later runs over the same
  dump, for any module. A cache that is unreadable or incomplete, or that was
  made for a dump of another size or modification time, is ignored and
  rebuilt.

Examples:
  svndumpsplit repo.dump libfoo > libfoo.dump
  svndumpsplit --metadata repo.meta -o libbar.dump repo.dump libbar
  svndumpsplit --list-modules repo.dump
"""

import argparse
import logging
import os
import sys

from svndumpsplit import dumpfile
from svndumpsplit import metadata
from svndumpsplit import relevance
from svndumpsplit import renumber
from svndumpsplit import svndump
from svndumpsplit import util
from svndumpsplit import writer

LOGGER = logging.getLogger('svndumpsplit' if __name__ == '__main__'
                           else __name__)

# Log progress every this many revisions
PROGRESS_INTERVAL = 1000

# Errors that describe a problem with the input rather than a bug
FATAL_ERRORS = (dumpfile.Error, metadata.Error, relevance.Error,
                renumber.Error, svndump.Error, util.Error)


class Splitter(object):
  """Extracts one module from one dump file.

  See __init__ for documentation of attributes.
  """

  def __init__(self,
               dump_path,
               module,
               output_stream,
               extras=None,
               drop_empty_revs=False,
               metadata_path=None):
    """Create a new Splitter with the given attributes.

    Args:
      dump_path: path of the dump file to read
      module: name of the module to extract
      output_stream: a writeable binary file-like object for the result
      extras: list of util.Extras naming nodes to keep unconditionally
      drop_empty_revs: if True, revisions that had no nodes in the input are
                       not written
      metadata_path: path of a metadata cache to load, or to create if it
                     does not exist yet
    """
    self.dump_path = dump_path
    self.module = module
    self.output_stream = output_stream
    self.extras = extras or []
    self.drop_empty_revs = drop_empty_revs
    self.metadata_path = metadata_path

  def Split(self):
    """Write the module's history to output_stream.

    Returns:
      the RelevanceEngine holding the marks of the run
    """
    module_filter = util.ModuleFilter(self.module)
    with dumpfile.DumpFile.Open(self.dump_path) as reader:
      preamble, revisions, cached = self._LoadDump(reader)
      engine = relevance.RelevanceEngine(module_filter,
                                         extras=self.extras,
                                         drop_empty_revs=self.drop_empty_revs)
      for revision in revisions:
        engine.Add(revision)
        if revision.number and not revision.number % PROGRESS_INTERVAL:
          LOGGER.info('Read r%d', revision.number)
      engine.Finish()
      if self.metadata_path and not cached:
        self._SaveMetadata(preamble, engine.revisions, reader.size)
      renumber.Renumberer(engine).Assign()
      writer.StreamWriter(reader, self.output_stream).Write(preamble, engine)
    return engine

  def _DumpMtime(self):
    return os.stat(self.dump_path).st_mtime_ns

  def _LoadDump(self, reader):
    """Get the preamble and an iterable of the revisions of the dump.

    A cache that cannot be read, is incomplete or describes another dump is
    ignored and the dump is parsed instead.

    Returns:
      (preamble, revisions, cached) where cached is True if they came from
      the metadata cache
    """
    if self.metadata_path and os.path.exists(self.metadata_path):
      try:
        preamble, revisions = self._LoadMetadata(reader.size)
      except (metadata.Error, svndump.Error) as e:
        LOGGER.warning('Ignoring metadata in %s: %s', self.metadata_path, e)
      else:
        LOGGER.info('Using item metadata from %s', self.metadata_path)
        return preamble, revisions, True
    return svndump.ReadPreamble(reader), svndump.ReadRevisions(reader), False

  def _LoadMetadata(self, dump_size):
    """Read and check the whole cache.

    Raises:
      metadata.MetadataError: if the cache is unusable for this dump
      svndump.Error: if the cache holds malformed items
    """
    with open(self.metadata_path, 'rb') as stream:
      index = metadata.MetadataIndex.Load(stream)
    stamp = (dump_size, self._DumpMtime())
    if metadata.DumpStamp(index) != stamp:
      raise metadata.MetadataError('it describes a different dump')
    return (metadata.PreambleFromIndex(index),
            list(metadata.RevisionsFromIndex(index)))

  def _SaveMetadata(self, preamble, revisions, dump_size):
    index = metadata.BuildIndex(preamble, revisions, dump_size,
                                self._DumpMtime())
    with writer.AtomicOutput(self.metadata_path) as stream:
      index.Persist(stream)
    LOGGER.info('Saved item metadata to %s', self.metadata_path)


def ListModules(revisions):
  """Find the names of all modules ever created.

  Args:
    revisions: iterable of svndump.Revisions

  Returns:
    a sorted list of directory names added directly below trunk,
    branches/<name> or tags/<name>
  """
  modules = set()
  for revision in revisions:
    for node in revision.nodes:
      if node.kind == 'dir' and node.action in ('add', 'replace'):
        name = util.ModuleName(node.path)
        if name is not None:
          modules.add(name)
  return sorted(modules)


def main(argv):
  """Extract a module from an SVN dump file.

  Args:
    argv: a list of flags passed to the script (but not argv[0])

  Returns:
    the exit status

  See module docstring for details.
  """
  # Parse command-line arguments.
  parser = argparse.ArgumentParser(prog='svndumpsplit',
                                   epilog=__doc__,
                                   formatter_class=(
                                       argparse.RawDescriptionHelpFormatter))
  parser.add_argument('dumpfile',
                      help='SVN dump file to read (must be seekable).')
  parser.add_argument('module',
                      nargs='?',
                      help='Name of the module to extract.')
  parser.add_argument('-o', '--output',
                      metavar='FILE',
                      help='Write the result to FILE instead of stdout. FILE'
                      ' only appears once the whole dump was written.')
  parser.add_argument('--extra',
                      type=argparse.FileType('r'),
                      metavar='FILE',
                      help='File listing nodes to keep unconditionally.')
  parser.add_argument('--metadata',
                      metavar='FILE',
                      help='Load item positions from FILE, or save them there'
                      ' if FILE does not exist.')
  parser.add_argument('--drop-empty-revs',
                      action='store_true',
                      help='Do not output revisions that have no nodes in the'
                      ' input dump (default is to keep them with date, commit'
                      ' message, and author intact).')
  parser.add_argument('--list-modules',
                      action='store_true',
                      help='Print the names of all modules in the dump instead'
                      ' of extracting one.')
  verbosity = parser.add_mutually_exclusive_group()
  verbosity.add_argument('--debug', action='store_true',
                         help='Log verbosely to stderr.')
  verbosity.add_argument('--quiet', action='store_true',
                         help='Only log warnings and errors.')

  options = parser.parse_args(argv)

  if options.debug:
    level = logging.DEBUG
  elif options.quiet:
    level = logging.WARNING
  else:
    level = logging.INFO
  logging.basicConfig(level=level, format='%(levelname)s: %(message)s')

  if not options.list_modules and options.module is None:
    parser.error('a module name is required unless --list-modules is given')

  try:
    if options.list_modules:
      with dumpfile.DumpFile.Open(options.dumpfile) as reader:
        svndump.ReadPreamble(reader)
        for name in ListModules(svndump.ReadRevisions(reader)):
          print(name)
      return 0

    extras = []
    if options.extra:
      with options.extra:
        extras = util.ParseExtras(options.extra)

    if options.output:
      with writer.AtomicOutput(options.output) as output_stream:
        Splitter(options.dumpfile, options.module, output_stream,
                 extras=extras,
                 drop_empty_revs=options.drop_empty_revs,
                 metadata_path=options.metadata).Split()
    else:
      Splitter(options.dumpfile, options.module, sys.stdout.buffer,
               extras=extras,
               drop_empty_revs=options.drop_empty_revs,
               metadata_path=options.metadata).Split()
  except FATAL_ERRORS as e:
    LOGGER.error('%s', e)
    return 1
  return 0


def run():
  sys.exit(main(sys.argv[1:]))


if __name__ == '__main__':
  run()
