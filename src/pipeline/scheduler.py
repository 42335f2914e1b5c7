"""
Frame scheduling and backpressure.

The scheduler sits between the frame producer and the inference worker.
`submit` is called on the producer thread and never blocks; `take` is
called by the worker and waits for the next admitted frame.

Admitted frames go through a single slot, so the worker is never more
than one frame behind:
- skip: drop frames while the skip counter is below the budget, then admit
  one and reset the counter.
- coalesce: admit every frame; a newer frame replaces one still waiting in
  the slot.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from models.config import SchedulingPolicy
from models.frame import FrameData


class FrameState(str, Enum):
    """Lifecycle of a frame inside the pipeline."""
    ARRIVED = "arrived"
    ADMITTED = "admitted"
    PREPROCESSING = "preprocessing"
    INFERRING = "inferring"
    DECODING = "decoding"
    SUPPRESSING = "suppressing"
    DELIVERED = "delivered"
    DROPPED = "dropped"
    FAILED = "failed"


StateCallback = Callable[[FrameData, FrameState], None]
StateEvent = Tuple[FrameData, FrameState]


@dataclass
class SchedulerStats:
    arrived: int = 0
    admitted: int = 0
    dropped: int = 0


class FrameScheduler:
    """
    Admit/drop decision plus a one-frame hand-off to the worker.

    The slot, the skip counter and the stats are guarded by one condition
    variable. Policy and budget can be changed at any time; the change
    applies to the next submitted frame.
    """

    def __init__(
        self,
        policy: SchedulingPolicy = SchedulingPolicy.SKIP,
        frame_skip_budget: int = 0,
        on_state: Optional[StateCallback] = None,
    ):
        if frame_skip_budget < 0:
            raise ValueError("frame_skip_budget must be non-negative")
        self._policy = SchedulingPolicy(policy)
        self._budget = frame_skip_budget
        self._on_state = on_state
        self._cond = threading.Condition()
        self._slot: Optional[FrameData] = None
        self._skipped = 0
        self._closed = False
        self.stats = SchedulerStats()

    @property
    def policy(self) -> SchedulingPolicy:
        return self._policy

    @property
    def frame_skip_budget(self) -> int:
        return self._budget

    @property
    def queued_frames(self) -> int:
        with self._cond:
            return 1 if self._slot is not None else 0

    @property
    def closed(self) -> bool:
        return self._closed

    def set_policy(self, policy: SchedulingPolicy) -> None:
        with self._cond:
            self._policy = SchedulingPolicy(policy)
            self._skipped = 0

    def set_frame_skip_budget(self, budget: int) -> None:
        if budget < 0:
            raise ValueError("frame_skip_budget must be non-negative")
        with self._cond:
            self._budget = budget
            self._skipped = 0

    def admit(self, frame: FrameData) -> bool:
        """
        Apply the policy's admit/drop rule without touching the slot.

        Returns True if the frame should be processed.
        """
        with self._cond:
            admitted, events = self._admit_locked(frame)
        self._emit_all(events)
        return admitted

    def submit(self, frame: FrameData) -> bool:
        """
        Offer a frame from the producer. Never blocks.

        Returns True if the frame was admitted into the slot. A frame that
        was already waiting in the slot is dropped in its favor.
        """
        replaced: Optional[FrameData] = None
        with self._cond:
            if self._closed:
                return False
            admitted, events = self._admit_locked(frame)
            if admitted:
                replaced = self._slot
                self._slot = frame
                if replaced is not None:
                    self.stats.dropped += 1
                    events.append((replaced, FrameState.DROPPED))
                self._cond.notify()

        # state callbacks never run under the lock
        self._emit_all(events)
        if replaced is not None:
            logging.debug(
                f"Frame {replaced.frame_index} replaced by {frame.frame_index} before processing"
            )
        return admitted

    def take(self, timeout: Optional[float] = None) -> Optional[FrameData]:
        """
        Wait for the next admitted frame and remove it from the slot.

        Returns None on timeout or once the scheduler is closed and empty.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._slot is not None or self._closed, timeout):
                return None
            frame, self._slot = self._slot, None
            return frame

    def close(self) -> None:
        """Stop accepting frames and wake any waiting worker."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def reopen(self) -> None:
        with self._cond:
            self._closed = False
            self._skipped = 0

    def _admit_locked(self, frame: FrameData) -> Tuple[bool, List[StateEvent]]:
        """Decide admit/drop; returns the decision and the transitions to emit."""
        self.stats.arrived += 1
        events: List[StateEvent] = [(frame, FrameState.ARRIVED)]

        if self._policy is SchedulingPolicy.SKIP and self._skipped < self._budget:
            self._skipped += 1
            self.stats.dropped += 1
            logging.debug(f"Frame {frame.frame_index} skipped ({self._skipped}/{self._budget})")
            events.append((frame, FrameState.DROPPED))
            return False, events

        self._skipped = 0
        self.stats.admitted += 1
        events.append((frame, FrameState.ADMITTED))
        return True, events

    def _emit_all(self, events: List[StateEvent]) -> None:
        if self._on_state is None:
            return
        for frame, state in events:
            try:
                self._on_state(frame, state)
            except Exception as e:
                logging.warning(f"Frame state callback error: {e}")
