"""
peerdrop - send files and folders to a peer over one TCP connection.
"""

__version__ = '0.1.0'
