"""
Task Board Client
Board/group/task collaborator that mirrors actions as trackable tasks
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class BoardGroup:
    id: str
    board_id: str
    name: str
    color: str
    order: int


@dataclass
class BoardTask:
    id: str
    board_id: str
    group_id: str
    title: str
    description: str = ""
    status: str = "not-started"
    priority: str = "medium"
    due_date: Optional[str] = None
    assigned_to: Optional[str] = None
    order: int = 0


@dataclass
class Board:
    id: str
    matter_id: str
    name: str
    groups: List[BoardGroup] = field(default_factory=list)
    tasks: List[BoardTask] = field(default_factory=list)


class TaskBoardClient(ABC):
    """
    Interface the engine uses to reach a task board.

    Implementations talk to whatever board service the deployment uses;
    InMemoryTaskBoard below backs tests and local runs.
    """

    @abstractmethod
    def list_boards(self, matter_id: str) -> List[Board]:
        raise NotImplementedError

    @abstractmethod
    def find_board(self, matter_id: str, name: str) -> Optional[Board]:
        raise NotImplementedError

    @abstractmethod
    def create_board(self, matter_id: str, name: str) -> Board:
        raise NotImplementedError

    @abstractmethod
    def find_group(self, board_id: str, name: str) -> Optional[BoardGroup]:
        raise NotImplementedError

    @abstractmethod
    def create_group(self, board_id: str, name: str, color: str, order: int) -> BoardGroup:
        raise NotImplementedError

    @abstractmethod
    def create_task(self, board_id: str, group_id: str, **fields) -> BoardTask:
        raise NotImplementedError

    @abstractmethod
    def update_task_status(self, task_id: str, status: str) -> None:
        raise NotImplementedError


class InMemoryTaskBoard(TaskBoardClient):
    """Task board kept in process memory"""

    def __init__(self):
        self.boards: Dict[str, Board] = {}
        self.tasks: Dict[str, BoardTask] = {}

    def list_boards(self, matter_id: str) -> List[Board]:
        return [b for b in self.boards.values() if b.matter_id == matter_id]

    def find_board(self, matter_id: str, name: str) -> Optional[Board]:
        for board in self.list_boards(matter_id):
            if board.name == name:
                return board
        return None

    def create_board(self, matter_id: str, name: str) -> Board:
        board = Board(id=str(uuid.uuid4()), matter_id=matter_id, name=name)
        self.boards[board.id] = board
        logger.info(f"Created board '{name}' for matter {matter_id}")
        return board

    def find_group(self, board_id: str, name: str) -> Optional[BoardGroup]:
        board = self.boards.get(board_id)
        if not board:
            return None
        for group in board.groups:
            if group.name == name:
                return group
        return None

    def create_group(self, board_id: str, name: str, color: str, order: int) -> BoardGroup:
        board = self.boards[board_id]
        group = BoardGroup(id=str(uuid.uuid4()), board_id=board_id, name=name, color=color, order=order)
        board.groups.append(group)
        return group

    def create_task(self, board_id: str, group_id: str, **fields) -> BoardTask:
        board = self.boards[board_id]
        task = BoardTask(id=str(uuid.uuid4()), board_id=board_id, group_id=group_id, **fields)
        board.tasks.append(task)
        self.tasks[task.id] = task
        return task

    def update_task_status(self, task_id: str, status: str) -> None:
        task = self.tasks.get(task_id)
        if task is None:
            logger.warning(f"Task {task_id} not found on board")
            return
        task.status = status
