"""
File Module - Source Enumeration and Output Storage
"""

from .storage import OutputRoot
from .walker import SourceFile, iter_source_files, is_hidden

__all__ = [
    'OutputRoot',
    'SourceFile',
    'iter_source_files',
    'is_hidden',
]
