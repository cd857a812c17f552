# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Write the kept part of a dump file."""

import contextlib
import logging
import pathlib
import tempfile

LOGGER = logging.getLogger(__name__)


class StreamWriter(object):
  """Writes items to an output stream, pulling content from the source dump.

  Attributes:
    reader: the dumpfile.DumpFile the items were read from
    sink: a writeable binary file-like object
  """

  def __init__(self, reader, sink):
    self.reader = reader
    self.sink = sink

  def WriteItem(self, item):
    item.CopyTo(self.reader, self.sink)
    # Content is followed by a newline that Content-length does not count.
    if item.content_length:
      self.sink.write(b'\n')

  def WritePreamble(self, preamble):
    for item in preamble:
      self.WriteItem(item)

  def WriteRevision(self, revision, nodes):
    """Write a revision followed by the given nodes, which must belong to it."""
    self.WriteItem(revision.item)
    for node in nodes:
      self.WriteItem(node.item)

  def Write(self, preamble, engine):
    """Write a whole dump.

    Args:
      preamble: the items preceding the first revision
      engine: a relevance.RelevanceEngine whose revisions were renumbered
    """
    self.WritePreamble(preamble)
    revisions = nodes = 0
    for revision in engine.RelevantRevisions():
      kept = engine.RelevantNodes(revision)
      self.WriteRevision(revision, kept)
      revisions += 1
      nodes += len(kept)
    self.sink.flush()
    LOGGER.info('Wrote %d revisions with %d nodes', revisions, nodes)


@contextlib.contextmanager
def AtomicOutput(path):
  """Open a binary file that only appears at path once fully written.

  Yields:
    a writeable binary file object. If the with block raises, the file is
    removed and path is left untouched.
  """
  target = pathlib.Path(path)
  tmp = tempfile.NamedTemporaryFile(dir=target.parent, prefix=target.name + '.',
                                    suffix='.tmp', delete=False)
  tmp_path = pathlib.Path(tmp.name)
  try:
    with tmp:
      yield tmp
    # replace() overwrites an existing file on all platforms
    tmp_path.replace(target)
  except BaseException:
    LOGGER.debug('Discarding partial output %s', tmp_path)
    tmp_path.unlink()
    raise
