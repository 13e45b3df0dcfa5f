"""Document ingestion: download -> extract -> chunk -> embed -> index.

1. **Extract** (providers/extraction/) -- format-specific extractors turn
   the downloaded bytes into plain text.
2. **Chunk** (chunker.py) -- lazy overlapping word windows.
3. **Embed + index** (coordinator.py) -- one chunk at a time, in ascending
   order, under the document's processing lock.
"""
