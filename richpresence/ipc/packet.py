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
Represents a Discord IPC packet.

.. currentmodule:: richpresence.ipc.packet
"""
import enum
import json
import struct
from typing import Tuple, Union

from richpresence.exc import DecodeError, EncodingError, FramingError

#: The frame header: opcode and body length, both little endian signed 32-bit ints.
HEADER = struct.Struct("<ii")

#: The largest body a frame may declare.
MAX_PAYLOAD_SIZE = 10 * 1024 * 1024


class IPCOpcode(enum.IntEnum):
    """
    Represents an IPC opcode.
    """
    HANDSHAKE = 0
    FRAME = 1
    ACTIVITY = 2
    READY = 3
    CLOSE = 4
    ACTIVITY_JOIN = 5
    ACTIVITY_SPECTATE = 6
    ACTIVITY_JOIN_REQUEST = 7


def _to_opcode(opcode: int) -> Union[IPCOpcode, int]:
    try:
        return IPCOpcode(opcode)
    except ValueError:
        return opcode


def _pack_json(data) -> bytes:
    """
    Packs JSON in a compact representation.

    :param data: The data to pack.
    """
    try:
        return json.dumps(data, indent=None, separators=(',', ':')).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodingError("Cannot serialize frame body: {}".format(e)) from e


def _unpack_json(body: bytes):
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError("Invalid frame body: {}".format(e)) from e


def _check_length(length: int) -> None:
    if length < 0 or length > MAX_PAYLOAD_SIZE:
        raise FramingError("Invalid payload length {}".format(length))


def encode(opcode: int, data) -> bytes:
    """
    Encodes a frame.

    :param opcode: The opcode of the frame.
    :param data: The JSON document to use as the body.
    :return: The header and body, ready to be written.
    """
    body = _pack_json(data)
    # little endian (why not network order?)
    return HEADER.pack(int(opcode), len(body)) + body


def decode(data: bytes) -> Tuple[Union[IPCOpcode, int], bytes]:
    """
    Splits one complete frame into its opcode and raw body.

    :param data: Exactly one frame's worth of bytes.
    :return: A tuple of (opcode, body).
    """
    if len(data) < HEADER.size:
        raise FramingError("Frame too small: {} bytes".format(len(data)))

    opcode, length = HEADER.unpack_from(data)
    _check_length(length)

    body = data[HEADER.size:]
    if len(body) != length:
        raise FramingError("Frame length mismatch: expected {} got {}".format(length, len(body)))

    return _to_opcode(opcode), bytes(body)


class IPCPacket(object):
    """
    Represents an IPC packet.
    """
    def __init__(self, opcode: Union[IPCOpcode, int], data):
        """
        :param opcode: The :class:`.IPCOpcode` for this packet.
        :param data: The JSON document enclosed in this packet.
        """
        self.opcode = opcode
        self._json_data = data

    def __repr__(self) -> str:
        return "<IPCPacket opcode={!r} data={!r}>".format(self.opcode, self._json_data)

    def _get(self, key: str):
        if not isinstance(self._json_data, dict):
            return None

        return self._json_data.get(key)

    # properties
    @property
    def json(self):
        """
        Gets the full JSON document of this packet.
        """
        return self._json_data

    @property
    def event(self) -> str:
        """
        Gets the event for this packet. Received packets only.
        """
        return self._get("evt")

    @property
    def cmd(self) -> str:
        """
        Gets the command for this packet.
        """
        return self._get("cmd")

    @property
    def nonce(self) -> str:
        """
        Gets the nonce for this packet.
        """
        return self._get("nonce")

    @property
    def data(self):
        """
        Gets the inner data for this packet.
        """
        return self._get("data")

    def serialize(self) -> bytes:
        """
        Serializes this packet into a series of bytes.
        """
        return encode(self.opcode, self._json_data)

    @classmethod
    def deserialize(cls, data: bytes) -> 'IPCPacket':
        """
        Deserializes a full packet.

        This method is not usually what you want.
        """
        opcode, body = decode(data)
        return IPCPacket(opcode, _unpack_json(body))

    @classmethod
    async def read_packet(cls, transport) -> 'IPCPacket':
        """
        Reads a packet off of the transport, and deserializes it.

        The header and then the body are read in full before anything is decoded, so a
        :class:`.DecodeError` leaves the stream positioned at the next frame.

        :param transport: The :class:`.Transport` to read from.
        """
        header = await transport.read_exactly(HEADER.size)

        # unpack header so we can get the length
        opcode, length = HEADER.unpack(header)
        _check_length(length)

        # read body based on header
        body = await transport.read_exactly(length)
        return IPCPacket(_to_opcode(opcode), _unpack_json(body))
