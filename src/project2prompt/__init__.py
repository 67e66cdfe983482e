"""
project2prompt - Copy a project directory to the clipboard for LLM chats.

This package walks a directory tree breadth-first, skips build artifacts,
VCS metadata and dependency caches, shows the tree live in the terminal and
finally copies the tree plus one code block per file to the clipboard.
"""

__version__ = "0.1.0"
__author__ = "project2prompt Team"
