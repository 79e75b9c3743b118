from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .models import Aquarium, CareTask, StockEntry, User


class Repository(ABC):
    """Storage seam for users, aquariums, stock and care tasks.

    Stock and tasks are stored per aquarium and replaced as a whole list.
    """

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def find_user_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def save_user(self, user: User) -> User: ...

    @abstractmethod
    def get_aquarium(self, aquarium_id: str) -> Optional[Aquarium]: ...

    @abstractmethod
    def aquariums_for_user(self, user_id: str) -> List[Aquarium]: ...

    @abstractmethod
    def save_aquarium(self, aquarium: Aquarium) -> Aquarium: ...

    @abstractmethod
    def delete_aquarium(self, aquarium_id: str) -> None:
        """Remove the aquarium together with its stock and tasks."""

    @abstractmethod
    def stock_for(self, aquarium_id: str) -> List[StockEntry]: ...

    @abstractmethod
    def save_stock(self, aquarium_id: str, stock: List[StockEntry]) -> None: ...

    @abstractmethod
    def tasks_for(self, aquarium_id: str) -> List[CareTask]: ...

    @abstractmethod
    def save_tasks(self, aquarium_id: str, tasks: List[CareTask]) -> None: ...

    def close(self) -> None:
        pass


class InMemoryRepository(Repository):
    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._aquariums: Dict[str, Aquarium] = {}
        self._stock: Dict[str, List[StockEntry]] = {}
        self._tasks: Dict[str, List[CareTask]] = {}

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def find_user_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email == email:
                return user
        return None

    def save_user(self, user: User) -> User:
        self._users[user.id] = user
        return user

    def get_aquarium(self, aquarium_id: str) -> Optional[Aquarium]:
        return self._aquariums.get(aquarium_id)

    def aquariums_for_user(self, user_id: str) -> List[Aquarium]:
        return [aquarium for aquarium in self._aquariums.values() if aquarium.user_id == user_id]

    def save_aquarium(self, aquarium: Aquarium) -> Aquarium:
        self._aquariums[aquarium.id] = aquarium
        return aquarium

    def delete_aquarium(self, aquarium_id: str) -> None:
        self._aquariums.pop(aquarium_id, None)
        self._stock.pop(aquarium_id, None)
        self._tasks.pop(aquarium_id, None)

    def stock_for(self, aquarium_id: str) -> List[StockEntry]:
        return list(self._stock.get(aquarium_id, []))

    def save_stock(self, aquarium_id: str, stock: List[StockEntry]) -> None:
        self._stock[aquarium_id] = list(stock)

    def tasks_for(self, aquarium_id: str) -> List[CareTask]:
        return list(self._tasks.get(aquarium_id, []))

    def save_tasks(self, aquarium_id: str, tasks: List[CareTask]) -> None:
        self._tasks[aquarium_id] = list(tasks)
