"""Streaming source reading: tokenizer and record mapper."""

from .mapper import RecordMapper
from .tokenizer import StreamTokenizer, header_length, partition_source

__all__ = ["RecordMapper", "StreamTokenizer", "header_length", "partition_source"]
