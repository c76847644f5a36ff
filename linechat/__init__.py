"""linechat: client for a null-terminated line chat protocol"""

__version__ = "1.0.0"
