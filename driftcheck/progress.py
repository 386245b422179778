# Copyright Red Hat
#
# driftcheck/progress.py - Mirror drift checker progress indicators
#
# This file is part of the driftcheck project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Progress and busy indicators for long running scans.
"""
from typing import Optional, TextIO
from abc import ABC, abstractmethod
import sys
import os

from driftcheck import register_progress, unregister_progress

#: Width of the progress bar body in characters.
DEFAULT_WIDTH = 30

#: Default number of throbs between throbber status lines.
DEFAULT_THROB_EVERY = 1000


def _flush_with_broken_pipe_guard(stream: TextIO) -> None:
    """
    Handle ``BrokenPipeError`` when attempting to flush output streams.

    :param stream: The stream to flush.
    :type stream: TextIO
    """
    if stream is None or not hasattr(stream, "flush"):
        return
    try:
        stream.flush()
    except BrokenPipeError as err:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        raise SystemExit() from err


class ProgressBase(ABC):
    """
    An abstract progress reporting class for work with a known total.
    """

    def __init__(self, header: str, register: bool = True):
        """
        Initialise base progress state.

        :param header: The progress header to display.
        :type header: ``str``
        :param register: Register this ``ProgressBase`` for log callbacks.
        :type register: ``bool``
        """
        self.total: int = 0
        self.header: str = header
        self.stream: Optional[TextIO] = None
        self.first_update: bool = True
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """Mark progress output as displaced by external output."""
        self.first_update = True

    def start(self, total: int):
        """
        Begin a progress run with the specified ``total``.

        :param total: The total number of expected progress items.
        :type total: ``int``
        """
        if total <= 0:
            raise ValueError("total must be positive.")

        self.total = total

        if self.register:
            register_progress(self)

        self._do_start()

    @abstractmethod
    def _do_start(self):
        """
        Hook invoked when progress begins.
        """

    def _check_in_progress(self, done: int, step: str):
        """
        Validate that progress is active and ``done`` is in range.

        :param done: The number of completed progress items.
        :type done: ``int``
        :param step: The progress step (method name) that is active.
        :type step: ``str``
        :raises ``ValueError``: If progress has not started, if done is
                                negative, or if done exceeds total.
        """
        theclass = self.__class__.__name__
        if self.total == 0:
            raise ValueError(f"{theclass}.{step}() called before start()")

        if done < 0:
            raise ValueError(f"{theclass}.{step}() done cannot be negative.")

        if done > self.total:
            raise ValueError(f"{theclass}.{step}() done cannot be > total.")

    def progress(self, done: int, message: Optional[str] = None):
        """
        Advance the progress indicator to the specified ``done`` count.

        :param done: The number of completed progress items.
        :type done: ``int``
        :param message: An optional progress message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(done, "progress")
        self._do_progress(done, message)

    @abstractmethod
    def _do_progress(self, done: int, message: Optional[str] = None):
        """
        Hook for subclasses to update the progress display.
        """

    def end(self, message: Optional[str] = None):
        """
        End the progress run and finalize the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(self.total, "end")
        self.progress(self.total, "")
        self._do_end(message)
        self.total = 0
        if self.registered:
            unregister_progress(self)

    @abstractmethod
    def _do_end(self, message: Optional[str] = None):
        """
        Perform final end-of-progress handling for both ``end()`` and
        ``cancel()``.
        """

    def cancel(self, message: Optional[str] = None):
        """
        End the progress run with error and finalize the display.

        :param message: An optional error message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(self.total, "cancel")
        self._do_end(message=message)
        self.total = 0
        if self.registered:
            unregister_progress(self)


class SimpleProgress(ProgressBase):
    """
    A simple progress bar that writes one line per whole percent of
    progress and does not rely on terminal capabilities.
    """

    BAR = "%s: %3d%% [%s%s] (%s)"  #: Progress bar format string
    DID = "="  #: Bar character for completed work.
    TODO = "-"  #: Bar character for uncompleted work.

    def __init__(
        self,
        header: str,
        register: bool = True,
        term_stream: Optional[TextIO] = None,
        width: int = DEFAULT_WIDTH,
    ):
        super().__init__(header, register=register)
        self.stream = term_stream or sys.stderr
        self.width: int = width
        self._last_percent: int = -1

    def _do_start(self):
        self._last_percent = -1

    def _do_progress(self, done: int, message: Optional[str] = None):
        """
        Report progress on this ``SimpleProgress`` instance.

        :param done: The number of completed progress items.
        :type done: ``int``
        :param message: An optional progress message.
        :type message: ``Optional[str]``
        """
        percent = int(100 * done / self.total)
        if percent == self._last_percent and not self.first_update:
            return
        self._last_percent = percent
        self.first_update = False

        n = int(self.width * done / self.total)
        print(
            self.BAR
            % (
                self.header,
                percent,
                self.DID * n,
                self.TODO * (self.width - n),
                message or "",
            ),
            file=self.stream,
        )
        _flush_with_broken_pipe_guard(self.stream)

    def _do_end(self, message: Optional[str] = None):
        if message:
            print(message, file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)


class NullProgress(ProgressBase):
    """
    A progress class that produces no output.
    """

    def _do_start(self):
        return

    # pylint: disable=unused-argument
    def _do_progress(self, done: int, message: Optional[str] = None):
        return

    # pylint: disable=unused-argument
    def _do_end(self, message: Optional[str] = None):
        return


class ThrobberBase(ABC):
    """
    An abstract busy indicator class. Unlike ``ProgressBase`` classes
    the throbber reports progress of a time consuming task where the
    total number of items is unknown (for instance, a lazy tree walk).
    """

    def __init__(self, header: str, register: bool = True):
        """
        Initialise base throbber state.

        :param header: The throbber header.
        :type header: ``str``
        :param register: Register this ``ThrobberBase`` for log callbacks.
        :type register: ``bool``
        """
        self.header: str = header
        self.stream: Optional[TextIO] = None
        self.started: bool = False
        self.count: int = 0
        self.first_update: bool = True
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """Mark throbber as displaced by external output."""
        self.first_update = True

    def start(self):
        """
        Begin a throbber run.
        """
        self.started = True
        self.count = 0

        if self.register:
            register_progress(self)

        self._do_start()

    def _do_start(self):
        """
        Hook invoked when throbber begins.
        """

    def _check_started(self, step: str):
        """
        Validate that throbber is active.

        :param step: The throbber step (method name) that is active.
        :type step: ``str``
        :raises ``ValueError``: If throbber has not started.
        """
        if not self.started:
            theclass = self.__class__.__name__
            raise ValueError(f"{theclass}.{step}() called before start()")

    def throb(self, message: Optional[str] = None):
        """
        Record one unit of work and output status if required.

        :param message: An optional status message for this unit of work.
        :type message: ``Optional[str]``
        """
        self._check_started("throb")
        self.count += 1
        self._do_throb(message)

    @abstractmethod
    def _do_throb(self, message: Optional[str] = None):
        """
        Hook for subclasses to update the throbber display.
        """

    def end(self, message: Optional[str] = None):
        """
        End the throbber run and finalize the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_started("end")
        self._do_end(message=message)
        self.started = False
        if self.registered:
            unregister_progress(self)

    def _do_end(self, message: Optional[str] = None):
        """
        Perform final end-of-throbber handling.
        """


class SimpleThrobber(ThrobberBase):
    """
    A simple throbber that prints a running count every ``every`` units
    of work.
    """

    def __init__(
        self,
        header: str,
        register: bool = True,
        term_stream: Optional[TextIO] = None,
        every: int = DEFAULT_THROB_EVERY,
    ):
        super().__init__(header, register=register)
        self.stream = term_stream or sys.stderr
        self.every: int = max(1, every)

    def _do_throb(self, message: Optional[str] = None):
        if self.count % self.every:
            return
        suffix = f" ({message})" if message else ""
        print(f"{self.header}: {self.count}{suffix}", file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)
        self.first_update = False

    def _do_end(self, message: Optional[str] = None):
        if message:
            print(f"{self.header}: {message}", file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)


class NullThrobber(ThrobberBase):
    """
    A throbber class that produces no output.
    """

    def _do_throb(self, message: Optional[str] = None):
        """No-op throb hook for NullThrobber."""


class ProgressFactory:
    """
    A factory for constructing progress objects.
    """

    @staticmethod
    def get_progress(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        register: bool = True,
    ) -> ProgressBase:
        """
        Return an appropriate ProgressBase implementation.

        :param header: The progress report header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: An optional ``TextIO`` output object.
                            Defaults to ``sys.stderr`` if unspecified.
        :type term_stream: ``Optional[TextIO]``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate progress implementation.
        :rtype: ``ProgressBase``
        """
        if quiet:
            return NullProgress(header, register=register)
        return SimpleProgress(header, register=register, term_stream=term_stream)

    @staticmethod
    def get_throbber(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        every: int = DEFAULT_THROB_EVERY,
        register: bool = True,
    ) -> ThrobberBase:
        """
        Return an appropriate ThrobberBase implementation.

        :param header: The throbber header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: An optional ``TextIO`` output object.
                            Defaults to ``sys.stderr`` if unspecified.
        :type term_stream: ``Optional[TextIO]``
        :param every: Number of throbs between status lines.
        :type every: ``int``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate throbber implementation.
        :rtype: ``ThrobberBase``
        """
        if quiet:
            return NullThrobber(header, register=register)
        return SimpleThrobber(
            header, register=register, term_stream=term_stream, every=every
        )


__all__ = [
    "DEFAULT_THROB_EVERY",
    "NullProgress",
    "NullThrobber",
    "ProgressBase",
    "ProgressFactory",
    "SimpleProgress",
    "SimpleThrobber",
    "ThrobberBase",
]
