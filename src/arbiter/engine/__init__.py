"""Room engine — lifecycle state machine and room manager."""

from arbiter.engine.rooms import RoomManager
from arbiter.engine.state_machine import RoomStateMachine

__all__ = ["RoomManager", "RoomStateMachine"]
