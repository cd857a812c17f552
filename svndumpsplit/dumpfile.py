# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Positional access to an SVN dump file.

Dump files routinely run to many gigabytes, so content blocks are never read
into memory. The reader scans header lines sequentially, skips over content
and later copies arbitrary byte ranges straight from the source to an output
stream.
"""

import io

# Bytes moved per read() during a range copy
CHUNK_SIZE = 1 << 20


class Error(Exception):
  """Parent class for this module's errors."""


class StreamExhausted(Error):
  """A skip or copy reached beyond the end of the dump file."""


class DumpFile(object):
  """Reads lines and byte ranges from a seekable binary stream.

  Attributes:
    size: total length of the stream in bytes
    line_pos: offset of the line most recently returned by ReadLine(), or
              None before the first read
  """

  def __init__(self, stream):
    """Create a new DumpFile.

    Args:
      stream: a readable, seekable file-like object opened in binary mode
    """
    self._stream = stream
    start = stream.tell()
    self.size = stream.seek(0, io.SEEK_END)
    stream.seek(start)
    self.line_pos = None

  @classmethod
  def Open(cls, path):
    """Open the dump file at path for reading."""
    return cls(open(path, 'rb'))

  def Close(self):
    self._stream.close()

  def __enter__(self):
    return self

  def __exit__(self, *unused_exc_info):
    self.Close()

  def Tell(self):
    return self._stream.tell()

  def Seek(self, pos):
    """Move the read cursor to an absolute offset."""
    if not 0 <= pos <= self.size:
      raise StreamExhausted('Cannot seek to offset 0x%08x in a dump of %d bytes'
                            % (pos, self.size))
    self._stream.seek(pos)

  def AtEOF(self):
    return self.Tell() >= self.size

  def ReadLine(self):
    """Read one line.

    Returns:
      the line as bytes without its trailing newline (b'' for a blank line),
      or None at the end of the stream
    """
    self.line_pos = self._stream.tell()
    line = self._stream.readline()
    if not line:
      return None
    if line.endswith(b'\n'):
      line = line[:-1]
    return line

  def Skip(self, length):
    """Advance the read cursor by length bytes without reading them.

    Raises:
      StreamExhausted: if fewer than length bytes remain
    """
    pos = self._stream.tell()
    if pos + length > self.size:
      raise StreamExhausted('Skipping %d bytes at offset 0x%08x runs past the'
                            ' end of the dump (%d bytes)'
                            % (length, pos, self.size))
    self._stream.seek(pos + length)

  def CopyRange(self, start, length, sink):
    """Copy length bytes starting at start to sink.

    Args:
      start: absolute offset of the first byte to copy
      length: number of bytes to copy
      sink: a writeable binary file-like object

    Raises:
      StreamExhausted: if the range extends past the end of the stream

    The current read position is restored afterwards, so range copies may be
    interleaved with a sequential scan.
    """
    if start < 0 or start + length > self.size:
      raise StreamExhausted('Range 0x%08x+%d lies outside the dump (%d bytes)'
                            % (start, length, self.size))
    saved = self._stream.tell()
    try:
      self._stream.seek(start)
      remaining = length
      while remaining:
        chunk = self._stream.read(min(CHUNK_SIZE, remaining))
        if not chunk:
          raise StreamExhausted('Dump ended unexpectedly at offset 0x%08x'
                                % (start + length - remaining))
        sink.write(chunk)
        remaining -= len(chunk)
    finally:
      self._stream.seek(saved)
