"""
Keystroke buffering for USB keyboard-wedge barcode scanners.

A hardware scanner types the barcode as a burst of key presses followed by
Enter. At the event level that is indistinguishable from a person typing,
except for timing: scanner keystrokes arrive a few milliseconds apart. The
ScanBuffer accumulates accepted characters and emits the code when Enter
arrives, discarding anything that trickled in too slowly to be a scan.

ScannerKeyFilter is the application-wide Qt event filter that feeds the buffer.
It tracks focus so that typing in a search box or quantity field is not
mistaken for a scan.
"""

import re
import time
from enum import Enum
from typing import Callable, List, Optional

from PySide6.QtCore import QEvent, QObject, Qt, QTimer, Signal
from PySide6.QtWidgets import (
    QAbstractSpinBox, QApplication, QLineEdit, QPlainTextEdit, QTextEdit, QWidget
)

from logger import get_logger

logger = get_logger(__name__)

TERMINATOR = "Enter"
ACCEPTED_CHAR = re.compile(r"[A-Za-z0-9\-_.]")

DEFAULT_MIN_LENGTH = 8
DEFAULT_MAX_LENGTH = 20
DEFAULT_TIMEOUT_MS = 100


class ScanBuffer(QObject):
    """
    Turns a stream of key presses into completed barcode strings.

    Rules:
    - Only single characters matching [A-Za-z0-9-_.] are buffered.
    - A gap of more than 2 x timeout since the previous accepted character
      starts a new scan (the old content is discarded).
    - An idle timer of `timeout` is re-armed on every accepted character;
      when it fires the partial scan is discarded.
    - The buffer is dropped as soon as it grows past max_length.
    - On Enter, content of min_length..max_length characters is emitted via
      scan_completed; anything else is dropped silently. The buffer is
      cleared either way.

    Attributes:
        scan_completed (Signal): Emitted with the trimmed barcode string
    """
    scan_completed = Signal(str)

    def __init__(
        self,
        min_length: int = DEFAULT_MIN_LENGTH,
        max_length: int = DEFAULT_MAX_LENGTH,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        clock: Callable[[], float] = time.monotonic,
        parent: Optional[QObject] = None,
    ):
        """
        Args:
            min_length: Shortest code accepted on Enter
            max_length: Longest code accepted; longer bursts are dropped
            timeout_ms: Expected maximum gap between scanner keystrokes
            clock: Monotonic clock in seconds, injectable for tests
            parent: Qt parent object
        """
        super().__init__(parent)
        self.min_length = min_length
        self.max_length = max_length
        self.timeout_ms = timeout_ms
        self._clock = clock

        self._characters: List[str] = []
        self._last_keystroke_at: Optional[float] = None

        self._idle_timer = QTimer(self)
        self._idle_timer.setSingleShot(True)
        self._idle_timer.setInterval(timeout_ms)
        self._idle_timer.timeout.connect(self._on_idle_timeout)

    @property
    def buffer(self) -> str:
        return ''.join(self._characters)

    def _gap_exceeded(self, now: float) -> bool:
        if self._last_keystroke_at is None:
            return False
        return (now - self._last_keystroke_at) * 1000 > 2 * self.timeout_ms

    def handle_key(self, key: str) -> bool:
        """
        Feed one key press.

        Args:
            key: The typed character, or TERMINATOR for Enter/Return

        Returns:
            True if the key was consumed as part of a scan, so the caller can
            suppress its default handling
        """
        if key == TERMINATOR:
            return self._on_terminator()

        if len(key) != 1 or not ACCEPTED_CHAR.fullmatch(key):
            return False

        now = self._clock()
        if self._gap_exceeded(now):
            self._characters.clear()

        self._characters.append(key)
        self._last_keystroke_at = now

        if len(self._characters) > self.max_length:
            logger.debug(f"Scan buffer exceeded {self.max_length} characters without Enter, dropping")
            self.clear()
            return True

        self._idle_timer.start()
        return True

    def _on_terminator(self) -> bool:
        had_content = bool(self._characters)
        stale = self._gap_exceeded(self._clock())
        code = self.buffer
        self.clear()

        if not had_content:
            return False

        if stale:
            logger.debug(f"Discarding stale scan buffer ({len(code)} chars)")
        elif self.min_length <= len(code) <= self.max_length:
            logger.debug(f"Scan completed: {code}")
            self.scan_completed.emit(code.strip())
        else:
            logger.debug(f"Dropping malformed scan of length {len(code)}")
        return True

    def _on_idle_timeout(self):
        if self._characters:
            logger.debug(f"Scan buffer idle, discarding {len(self._characters)} chars")
        self._characters.clear()

    def clear(self):
        """Discard buffered characters and stop the idle timer."""
        self._idle_timer.stop()
        self._characters.clear()


class InputMode(Enum):
    """Where key presses are routed, derived from the focused widget."""
    SCANNER_ARMED = "scanner_armed"
    TEXT_ENTRY = "text_entry"


TEXT_ENTRY_WIDGETS = (QLineEdit, QTextEdit, QPlainTextEdit, QAbstractSpinBox)


def input_mode_for_widget(widget: Optional[QWidget]) -> InputMode:
    """TEXT_ENTRY when an editable text widget has focus, SCANNER_ARMED otherwise."""
    if isinstance(widget, TEXT_ENTRY_WIDGETS):
        read_only = getattr(widget, 'isReadOnly', lambda: False)()
        if not read_only:
            return InputMode.TEXT_ENTRY
    return InputMode.SCANNER_ARMED


class ScannerKeyFilter(QObject):
    """
    Application-wide key filter that feeds a ScanBuffer.

    In SCANNER_ARMED mode every key press is offered to the buffer and keys
    the buffer consumes never reach the focused widget. In TEXT_ENTRY mode the
    focused text field gets the keys; they are buffered as well only when
    capture_in_text_fields is set (the scanner then also works while a text
    field has focus, at the cost of the code being typed into that field).

    Attributes:
        input_mode_changed (Signal): Emitted with the new InputMode
    """
    input_mode_changed = Signal(object)

    def __init__(self, scan_buffer: ScanBuffer, capture_in_text_fields: bool = False,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self.scan_buffer = scan_buffer
        self.capture_in_text_fields = capture_in_text_fields
        self.input_mode = InputMode.SCANNER_ARMED
        self._app: Optional[QApplication] = None

    def install(self, app: QApplication):
        """Attach to the application for the lifetime of the owning view."""
        self._app = app
        app.installEventFilter(self)
        app.focusChanged.connect(self._on_focus_changed)
        self._on_focus_changed(None, app.focusWidget())

    def uninstall(self):
        if self._app is None:
            return
        self._app.removeEventFilter(self)
        self._app.focusChanged.disconnect(self._on_focus_changed)
        self._app = None
        self.scan_buffer.clear()

    def _on_focus_changed(self, old: Optional[QWidget], new: Optional[QWidget]):
        self.set_input_mode(input_mode_for_widget(new))

    def set_input_mode(self, mode: InputMode):
        if mode is self.input_mode:
            return
        self.input_mode = mode
        logger.debug(f"Input mode: {mode.value}")
        self.input_mode_changed.emit(mode)

    def process_key(self, key: str) -> bool:
        """
        Route one key press according to the input mode.

        Returns:
            True if the key press should be swallowed
        """
        if self.input_mode is InputMode.TEXT_ENTRY:
            if self.capture_in_text_fields:
                self.scan_buffer.handle_key(key)
            return False
        return self.scan_buffer.handle_key(key)

    def eventFilter(self, obj: QObject, event: QEvent) -> bool:
        if event.type() != QEvent.Type.KeyPress or event.isAutoRepeat():
            return False

        # Key events reach the window first and then the focus widget;
        # only handle the delivery to the focus widget so each press counts once
        app = QApplication.instance()
        target = app.focusWidget() or app.activeWindow()
        if obj is not target:
            return False

        if event.key() in (Qt.Key.Key_Return, Qt.Key.Key_Enter):
            key = TERMINATOR
        else:
            key = event.text()
        return self.process_key(key)
