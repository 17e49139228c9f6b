from .file_board import FileTaskBoard
from .interfaces import Comment, TaskBoard, TaskCard
from .reconciler import BoardReconciler

__all__ = ["BoardReconciler", "Comment", "FileTaskBoard", "TaskBoard", "TaskCard"]
