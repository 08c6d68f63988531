from .file_ops import FileOperationError, FileOps
from .registry import ToolRegistry

__all__ = ["ToolRegistry", "FileOps", "FileOperationError"]
