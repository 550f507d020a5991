# DataTracker utils subpackage
from .console import Console, format_bytes, format_speed

__all__ = ['Console', 'format_bytes', 'format_speed']
