# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Structural model of SVN dump files: items, nodes and revisions.

http://svn.apache.org/repos/asf/subversion/trunk/notes/dump-load-format.txt

An item is a block of RFC822-ish headers terminated by a blank line and
followed by Content-length bytes of content. Only headers are ever parsed;
content stays in the dump file and is copied by byte range when written.
"""

import collections
import logging

from svndumpsplit import dumpfile

LOGGER = logging.getLogger(__name__)

FORMAT_VERSION = 'SVN-fs-dump-format-version'
UUID = 'UUID'
REVISION_NUMBER = 'Revision-number'
NODE_PATH = 'Node-path'
NODE_KIND = 'Node-kind'
NODE_ACTION = 'Node-action'
COPYFROM_PATH = 'Node-copyfrom-path'
COPYFROM_REV = 'Node-copyfrom-rev'
CONTENT_LENGTH = 'Content-length'

KINDS = ('file', 'dir')
ACTIONS = ('add', 'change', 'delete', 'replace')

ENCODING = 'utf-8'


class Error(Exception):
  """Parent class for this module's errors."""


class MalformedItemError(Error):
  """The dump file does not have the structure of an SVN dump."""


class SequenceViolationError(Error):
  """Revision numbers are not consecutive."""


def _Decode(data):
  return data.decode(ENCODING, 'surrogateescape')


def _Encode(text):
  return text.encode(ENCODING, 'surrogateescape')


class Item(object):
  """One header block plus optional content from an SVN dump file.

  Attributes:
    headers: {str: str} OrderedDict of the headers in dump file order
    pos: offset of the first header line in the dump file
    content_pos: offset of the first content byte (just past the blank line
                 ending the headers)
    content_length: value of the Content-length header, 0 if absent
    dirty: True once a header value was changed, meaning CopyTo must
           re-serialize the headers instead of copying the original bytes
  """

  def __init__(self, headers, pos, content_pos):
    """Create a new Item.

    Args:
      headers: OrderedDict of headers; the first key is the item's type
      pos: offset of the item's first header line
      content_pos: offset at which the item's content starts

    Raises:
      MalformedItemError: if there are no headers or Content-length is not a
                          non-negative integer
    """
    if not headers:
      raise MalformedItemError('Item at 0x%08x has no headers' % pos)
    self.headers = headers
    self.pos = pos
    self.content_pos = content_pos
    length = headers.get(CONTENT_LENGTH, '0')
    try:
      self.content_length = int(length)
    except ValueError:
      self.content_length = -1
    if self.content_length < 0:
      raise MalformedItemError('Bad %s %r in item at 0x%08x'
                               % (CONTENT_LENGTH, length, pos))
    self.dirty = False

  @property
  def type(self):
    """The key of the first header, which identifies the kind of item."""
    return next(iter(self.headers))

  @property
  def type_value(self):
    return self.headers[self.type]

  @property
  def size(self):
    """Number of bytes spanned by the item in the original dump file."""
    return self.content_pos + self.content_length - self.pos

  def SetHeader(self, key, value):
    """Change a header value, flagging the item for re-serialization.

    Setting a header to the value it already has is a no-op.
    """
    if key not in self.headers:
      raise KeyError('%s is not a header of the item at 0x%08x'
                     % (key, self.pos))
    if self.headers[key] != value:
      self.headers[key] = value
      self.dirty = True

  def CopyTo(self, reader, sink):
    """Write the item to sink.

    Args:
      reader: the dumpfile.DumpFile the item was read from
      sink: a writeable binary file-like object

    Unchanged items are copied verbatim. Changed items get their headers
    written again in their original order, followed by the original content.
    """
    if not self.dirty:
      reader.CopyRange(self.pos, self.size, sink)
      return
    for key, value in self.headers.items():
      sink.write(_Encode('%s: %s\n' % (key, value)))
    sink.write(b'\n')
    reader.CopyRange(self.content_pos, self.content_length, sink)

  def __repr__(self):
    return '<Item %s: %s at 0x%08x>' % (self.type, self.type_value, self.pos)


def ReadItem(reader):
  """Read an Item from the given DumpFile.

  Args:
    reader: a dumpfile.DumpFile positioned at the start of an item (blank
            lines before the first header are skipped)

  Returns:
    the Item, or None if the stream ended before any header was found

  Raises:
    MalformedItemError: for a header line without a colon, a stream that ends
                        inside the headers, or content running past the end of
                        the stream
  """
  headers = collections.OrderedDict()
  pos = None
  while True:
    line = reader.ReadLine()
    if line is None:
      if headers:
        raise MalformedItemError('Reached EOF while reading headers of item at'
                                 ' 0x%08x' % pos)
      # EOF is ok if no headers are found first
      return None
    if not line:
      if headers:
        break
      continue  # newline before headers is simply ignored
    key, colon, value = line.partition(b':')
    if not colon:
      raise MalformedItemError('Header line without a colon at 0x%08x: %r'
                               % (reader.line_pos, line))
    if pos is None:
      pos = reader.line_pos
    headers[_Decode(key)] = _Decode(value.strip())
  item = Item(headers, pos, reader.Tell())
  try:
    reader.Skip(item.content_length)
  except dumpfile.StreamExhausted:
    raise MalformedItemError('%s %d of item at 0x%08x runs past the end of the'
                             ' dump' % (CONTENT_LENGTH, item.content_length,
                                        pos))
  return item


class Node(object):
  """A change to one path within a revision.

  Attributes:
    item: the underlying Item
    path: Node-path value
    kind: 'file', 'dir', or None (only allowed for deletes)
    action: 'add', 'change', 'delete' or 'replace'
    copy_source_path: Node-copyfrom-path value or None
    copy_source_revision: Node-copyfrom-rev value as an int, or None. This
                          always holds the number from the original dump, even
                          after the header was rewritten.
  """

  def __init__(self, item):
    headers = item.headers
    self.item = item
    self.path = headers[NODE_PATH].strip('/')
    self.action = headers.get(NODE_ACTION)
    self.kind = headers.get(NODE_KIND)
    if self.action not in ACTIONS:
      raise MalformedItemError('Bad %s %r for %s at 0x%08x'
                               % (NODE_ACTION, self.action, self.path,
                                  item.pos))
    if self.kind is None:
      if self.action != 'delete':
        raise MalformedItemError('Missing %s for %s of %s at 0x%08x'
                                 % (NODE_KIND, self.action, self.path,
                                    item.pos))
    elif self.kind not in KINDS:
      raise MalformedItemError('Bad %s %r for %s at 0x%08x'
                               % (NODE_KIND, self.kind, self.path, item.pos))
    self.copy_source_path = headers.get(COPYFROM_PATH)
    copy_rev = headers.get(COPYFROM_REV)
    if (self.copy_source_path is None) != (copy_rev is None):
      raise MalformedItemError('%s and %s must be given together (%s at'
                               ' 0x%08x)' % (COPYFROM_PATH, COPYFROM_REV,
                                             self.path, item.pos))
    if copy_rev is None:
      self.copy_source_revision = None
    else:
      self.copy_source_path = self.copy_source_path.strip('/')
      try:
        self.copy_source_revision = int(copy_rev)
      except ValueError:
        raise MalformedItemError('Bad %s %r for %s at 0x%08x'
                                 % (COPYFROM_REV, copy_rev, self.path,
                                    item.pos))

  @classmethod
  def FromItem(cls, item):
    """Interpret an Item as a Node.

    Returns:
      a Node, or None if the item is not a Node-path item
    """
    if item.type != NODE_PATH:
      return None
    return cls(item)

  def RewriteCopySource(self, revnum):
    """Point the Node-copyfrom-rev header at a new revision number."""
    self.item.SetHeader(COPYFROM_REV, str(revnum))

  def __repr__(self):
    if self.copy_source_path is None:
      return '<Node %s %s %s>' % (self.action, self.kind, self.path)
    return '<Node %s %s %s from %s@%d>' % (self.action, self.kind, self.path,
                                          self.copy_source_path,
                                          self.copy_source_revision)


class Revision(object):
  """A revision and the Nodes it contains.

  Attributes:
    item: the underlying Item
    number: revision number in the original dump
    nodes: list of Nodes in dump file order
    relevant: set once the revision belongs in the output
    new_number: revision number in the output, None until renumbered
  """

  def __init__(self, item, nodes=None):
    self.item = item
    try:
      self.number = int(item.type_value)
    except ValueError:
      raise MalformedItemError('Bad %s %r at 0x%08x'
                               % (REVISION_NUMBER, item.type_value, item.pos))
    self.nodes = nodes if nodes is not None else []
    self.relevant = False
    self.new_number = None

  @classmethod
  def FromItem(cls, item, nodes=None):
    """Interpret an Item as a Revision.

    Returns:
      a Revision, or None if the item is not a Revision-number item
    """
    if item.type != REVISION_NUMBER:
      return None
    return cls(item, nodes)

  @property
  def node_count(self):
    return len(self.nodes)

  def SetNewNumber(self, new_number):
    self.new_number = new_number
    self.item.SetHeader(REVISION_NUMBER, str(new_number))

  def __repr__(self):
    return '<Revision %d (%d nodes)>' % (self.number, self.node_count)


def ReadPreamble(reader):
  """Read the items preceding the first revision.

  Returns:
    a list holding the format version Item and, if present, the UUID Item

  Raises:
    MalformedItemError: if the stream does not start with a format version
  """
  version = ReadItem(reader)
  if version is None or version.type != FORMAT_VERSION:
    raise MalformedItemError('Dump does not start with %s' % FORMAT_VERSION)
  LOGGER.debug('Dump format version %s', version.type_value)
  preamble = [version]
  uuid = ReadItem(reader)
  if uuid is not None:
    if uuid.type == UUID:
      preamble.append(uuid)
    else:
      # Older dumps carry no UUID; leave the item for ReadRevision.
      reader.Seek(uuid.pos)
  return preamble


def ReadRevision(reader):
  """Read a Revision and all of its Nodes.

  Args:
    reader: a dumpfile.DumpFile positioned at a Revision-number item

  Returns:
    the Revision, or None at the end of the stream

  Raises:
    MalformedItemError: if a non-Revision item is found where a revision
                        should start, or an item of unknown type appears
                        among the nodes

  Reading stops at the next Revision-number item, which is left unconsumed.
  """
  item = ReadItem(reader)
  if item is None:
    return None
  revision = Revision.FromItem(item)
  if revision is None:
    raise MalformedItemError('Expected %s, got %s at 0x%08x'
                             % (REVISION_NUMBER, item.type, item.pos))
  while True:
    item = ReadItem(reader)
    if item is None:
      break
    node = Node.FromItem(item)
    if node is None:
      if item.type == REVISION_NUMBER:
        reader.Seek(item.pos)
        break
      raise MalformedItemError('Unexpected %s item at 0x%08x in r%d'
                               % (item.type, item.pos, revision.number))
    revision.nodes.append(node)
  LOGGER.debug('Read r%d with %d nodes', revision.number, revision.node_count)
  return revision


def ReadRevisions(reader):
  """Generate every remaining Revision in the dump file."""
  while True:
    revision = ReadRevision(reader)
    if revision is None:
      return
    yield revision
