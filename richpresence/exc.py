# This file is part of richpresence.
#
# richpresence is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# richpresence is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with richpresence.  If not, see <http://www.gnu.org/licenses/>.

"""
Exceptions raised from within the library.

.. currentmodule:: richpresence.exc
"""


class RichPresenceError(Exception):
    """
    The base class for all richpresence exceptions.
    """


class IPCError(RichPresenceError):
    """
    Represents an error with the IPC protocol or the connection carrying it.
    """


class DialError(IPCError, ConnectionError):
    """
    Raised when the IPC endpoint could not be opened.
    """

    def __init__(self, path: str, reason: Exception = None):
        self.path = path
        self.reason = reason

    def __str__(self) -> str:
        return "Could not connect to IPC endpoint {}: {}".format(self.path, self.reason)

    __repr__ = __str__


class HandshakeSendError(IPCError):
    """
    Raised when the handshake frame could not be written after opening the endpoint.
    """


class AlreadyConnectedError(IPCError):
    """
    Raised when :meth:`.IPCClient.connect` is called on a client that is already connected.
    """


class NotConnectedError(IPCError):
    """
    Raised when a command is sent without an open connection.
    """


class FramingError(IPCError):
    """
    Raised when a frame header is inconsistent with the bytes that follow it.
    """


class DecodeError(IPCError):
    """
    Raised when a frame body is not a valid JSON document.
    """


class EncodingError(IPCError):
    """
    Raised when an outbound frame body cannot be serialized.
    """


class WriteError(IPCError):
    """
    Raised when writing to the IPC transport fails.
    """


class ReadError(IPCError):
    """
    Raised when reading from the IPC transport fails, including end of stream.
    """


class RemoteClosedError(IPCError):
    """
    Raised when the remote side sends a CLOSE frame.

    :ivar code: The close code sent by the remote side, if any.
    :ivar message: The close message sent by the remote side, if any.
    """

    def __init__(self, code: int = None, message: str = None):
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return "Connection closed by remote ({}): {}".format(self.code, self.message)

    __repr__ = __str__


class CommandError(IPCError):
    """
    Represents an ERROR event sent back in reply to a command.
    """

    def __init__(self, code: int = None, message: str = None):
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return "Command failed ({}): {}".format(self.code, self.message)

    __repr__ = __str__


class ReconnectFailedError(IPCError):
    """
    Reported when every automatic reconnection attempt has failed.
    """

    def __init__(self, attempts: int):
        self.attempts = attempts

    def __str__(self) -> str:
        return "Failed to reconnect after {} attempts".format(self.attempts)

    __repr__ = __str__
