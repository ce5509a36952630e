"""
Safe output storage for the sales report tool
Scoped temp files and locked report destinations
"""

from .temp_arena import TempArena
from .output_guard import OutputGuard, write_atomic

__all__ = ['TempArena', 'OutputGuard', 'write_atomic']
