# Copyright 2013 Google Inc. All Rights Reserved.
#
# Use of this source code is governed by a MIT-style
# license that can be found in the LICENSE file or at
# http://opensource.org/licenses/MIT

"""Cache of item positions and headers for a dump file.

Parsing the headers of a multi-gigabyte dump takes a while. After one run
the offsets and headers of every item can be saved as YAML, and later runs
over the same dump rebuild their Revisions and Nodes from it without reading
the dump sequentially. Content is still copied from the dump itself.

Layout of the entries:
  dump: {size: <bytes in the dump>, mtime: <modification time in ns>,
         revisions: <number of revisions>, items: <number of items>}
  preamble: [<item>, ...]
  revision_<N>: <item> plus node_count: <int> and nodes: [<item>, ...]
where each <item> is {pos: <offset>, cpos: <content offset - pos>,
headers: [[key, value], ...]}. The counts let a reader tell a complete index
from one that was cut short.
"""

import collections
import logging

import yaml

from svndumpsplit import svndump

LOGGER = logging.getLogger(__name__)

FORMAT_VERSION = 2


class Error(Exception):
  """Parent class for this module's errors."""


class MetadataError(Error):
  """The cache file is unreadable or does not describe a dump."""


class MetadataIndex(object):
  """A key-value store persisted as a YAML document."""

  def __init__(self, entries=None):
    self._entries = dict(entries or {})

  def __len__(self):
    return len(self._entries)

  def Put(self, key, metadata):
    self._entries[key] = metadata

  def GetByKey(self, key):
    """Return the metadata stored under key, or None."""
    return self._entries.get(key)

  def Persist(self, stream):
    """Write the index to a binary stream as UTF-8 YAML."""
    try:
      yaml.safe_dump({'version': FORMAT_VERSION, 'entries': self._entries},
                     stream, encoding='utf-8', sort_keys=False,
                     default_flow_style=None, allow_unicode=True)
    except yaml.YAMLError as e:
      raise MetadataError('Cannot save metadata: %s' % e)

  @classmethod
  def Load(cls, stream):
    """Read an index written by Persist().

    Raises:
      MetadataError: if stream does not hold a metadata index
    """
    try:
      data = yaml.safe_load(stream)
    except yaml.YAMLError as e:
      raise MetadataError('Cannot parse metadata: %s' % e)
    if not isinstance(data, dict) or not isinstance(data.get('entries'), dict):
      raise MetadataError('Metadata must be a mapping with "entries"')
    if data.get('version') != FORMAT_VERSION:
      raise MetadataError('Unsupported metadata version %r'
                          % data.get('version'))
    return cls(data['entries'])


def RevisionKey(revnum):
  return 'revision_%d' % revnum


def ItemMetadata(item):
  return {'pos': item.pos,
          'cpos': item.content_pos - item.pos,
          'headers': [[key, value] for key, value in item.headers.items()]}


def ItemFromMetadata(metadata):
  """Rebuild an svndump.Item from its metadata.

  Raises:
    MetadataError: if metadata is not in the format written by ItemMetadata
  """
  try:
    headers = collections.OrderedDict((str(key), str(value))
                                      for key, value in metadata['headers'])
    pos = int(metadata['pos'])
    content_pos = pos + int(metadata['cpos'])
  except (KeyError, TypeError, ValueError) as e:
    raise MetadataError('Bad item metadata %r: %s' % (metadata, e))
  return svndump.Item(headers, pos, content_pos)


def BuildIndex(preamble, revisions, dump_size, dump_mtime):
  """Describe a parsed dump.

  Args:
    preamble: list of svndump.Items preceding the first revision
    revisions: list of svndump.Revisions, numbered consecutively from 0
    dump_size: size of the dump file in bytes
    dump_mtime: modification time of the dump file in nanoseconds

  Returns:
    a MetadataIndex
  """
  index = MetadataIndex()
  items = len(preamble) + sum(1 + revision.node_count
                              for revision in revisions)
  index.Put('dump', {'size': dump_size, 'mtime': dump_mtime,
                     'revisions': len(revisions), 'items': items})
  index.Put('preamble', [ItemMetadata(item) for item in preamble])
  for revision in revisions:
    entry = ItemMetadata(revision.item)
    entry['node_count'] = revision.node_count
    entry['nodes'] = [ItemMetadata(node.item) for node in revision.nodes]
    index.Put(RevisionKey(revision.number), entry)
  return index


def DumpStamp(index):
  """(size, mtime) of the dump an index was built for, or None if unknown."""
  dump = index.GetByKey('dump')
  if not isinstance(dump, dict):
    return None
  return dump.get('size'), dump.get('mtime')


def PreambleFromIndex(index):
  entries = index.GetByKey('preamble')
  if not isinstance(entries, list):
    raise MetadataError('Metadata has no preamble')
  return [ItemFromMetadata(entry) for entry in entries]


def RevisionsFromIndex(index):
  """Generate the svndump.Revisions described by an index.

  Raises:
    MetadataError: if an entry is missing, malformed or incomplete, or the
                   index holds fewer items than it was written with
  """
  dump = index.GetByKey('dump')
  if (not isinstance(dump, dict) or 'revisions' not in dump
      or 'items' not in dump):
    raise MetadataError('Metadata does not record the size of the dump')
  items = len(index.GetByKey('preamble') or [])
  for revnum in range(dump['revisions']):
    entry = index.GetByKey(RevisionKey(revnum))
    if not isinstance(entry, dict):
      raise MetadataError('Metadata has no entry for r%d' % revnum)
    node_entries = entry.get('nodes') or []
    if entry.get('node_count') != len(node_entries):
      raise MetadataError('Metadata for r%d lists %d of %r nodes'
                          % (revnum, len(node_entries),
                             entry.get('node_count')))
    nodes = []
    for node_entry in node_entries:
      node = svndump.Node.FromItem(ItemFromMetadata(node_entry))
      if node is None:
        raise MetadataError('Metadata for r%d lists a non-node item' % revnum)
      nodes.append(node)
    revision = svndump.Revision.FromItem(ItemFromMetadata(entry), nodes)
    if revision is None or revision.number != revnum:
      raise MetadataError('Metadata entry %s is not r%d'
                          % (RevisionKey(revnum), revnum))
    items += 1 + len(nodes)
    yield revision
  if items != dump['items']:
    raise MetadataError('Metadata holds %d of %d items'
                        % (items, dump['items']))
