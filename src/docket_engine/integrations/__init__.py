from .task_board import Board, BoardGroup, BoardTask, TaskBoardClient, InMemoryTaskBoard
from .calendar_sync import CalendarEvent, CalendarClient, InMemoryCalendar

__all__ = [
    "Board",
    "BoardGroup",
    "BoardTask",
    "TaskBoardClient",
    "InMemoryTaskBoard",
    "CalendarEvent",
    "CalendarClient",
    "InMemoryCalendar",
]
