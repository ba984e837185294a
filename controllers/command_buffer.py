""" Mirror of Grbl's serial receive buffer.
Grbl can only hold RX_BUFFER_SIZE characters of unprocessed commands. Each line
sent occupies space until Grbl acknowledges it with "ok" or "error:".
https://github.com/gnea/grbl/wiki/Grbl-v1.1-Interface#streaming-protocol-character-counting-recommended-with-reservation """

from typing import Deque
from collections import deque
import logging

from definitions import RX_BUFFER_SIZE, REALTIME_COMMANDS

logger = logging.getLogger(__name__)


def is_realtime_command(command: bytes) -> bool:
    """ Realtime commands are a single byte and never occupy buffer space. """
    return len(command) == 1 and command[0] in REALTIME_COMMANDS


class CommandBuffer:
    """ Character counts of lines sent to Grbl but not yet acknowledged. """

    def __init__(self, capacity: int = RX_BUFFER_SIZE) -> None:
        self.capacity: int = capacity
        self._send_buf_lens: Deque[int] = deque()
        self._total: int = 0

        # Acknowledgements received while nothing was pending.
        self.desync_count: int = 0

    def __len__(self) -> int:
        return len(self._send_buf_lens)

    @property
    def total(self) -> int:
        """ Characters currently occupying Grbl's receive buffer. """
        return self._total

    def would_overflow(self, command: bytes) -> bool:
        """ Would sending this command fill Grbl's receive buffer? """
        if is_realtime_command(command):
            return False
        return self._total + len(command) >= self.capacity

    def register_sent(self, command: bytes) -> None:
        """ Record a command as having been written to Grbl. """
        if is_realtime_command(command):
            return
        self._send_buf_lens.append(len(command))
        self._total += len(command)

    def register_ack(self) -> None:
        """ Grbl replied "ok" to the oldest pending line. """
        self._pop()

    def register_error(self) -> None:
        """ Grbl replied "error:" to the oldest pending line. """
        self._pop()

    def clear(self) -> None:
        """ Forget all pending lines. eg: After a soft reset. """
        self._send_buf_lens.clear()
        self._total = 0

    def _pop(self) -> None:
        if not self._send_buf_lens:
            self.desync_count += 1
            logger.warning("Acknowledgement received with no commands pending. "
                           "Buffer tracking is out of sync with Grbl.")
            return
        self._total -= self._send_buf_lens.popleft()
