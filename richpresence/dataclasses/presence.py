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
Wrappers for Rich Presence activity objects.

.. currentmodule:: richpresence.dataclasses.presence
"""

import enum
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

#: URL prefixes a button link may start with.
BUTTON_URL_SCHEMES = ("http://", "https://")

#: The maximum number of buttons sent with an activity.
MAX_BUTTONS = 2

#: The longest ``state`` or ``details`` Discord accepts.
MAX_TEXT_LENGTH = 128


class ActivityType(enum.IntEnum):
    """
    Represents an activity's type.
    """
    #: Shows the ``Playing`` text.
    PLAYING = 0

    #: Shows the ``Streaming`` text.
    STREAMING = 1

    #: Shows the ``Listening to`` text.
    LISTENING = 2

    #: Shows the ``Watching`` text.
    WATCHING = 3

    #: Shows the ``Competing in`` text.
    COMPETING = 5


@dataclass
class Timestamps:
    """
    The start and end of an activity, in epoch seconds. Zero means unset.
    """

    #: When the activity started.
    start: int = 0

    #: When the activity ends.
    end: int = 0

    def is_set(self) -> bool:
        return bool(self.start or self.end)

    def to_dict(self) -> dict:
        d = {}
        if self.start:
            d["start"] = self.start
        if self.end:
            d["end"] = self.end

        return d


@dataclass
class Assets:
    """
    The image assets for an activity. Image keys refer to assets uploaded for the application.
    """

    #: The key of the large image.
    large_image: str = ""

    #: The hover text of the large image.
    large_text: str = ""

    #: The key of the small image.
    small_image: str = ""

    #: The hover text of the small image.
    small_text: str = ""

    def to_dict(self, default_text: str = "") -> dict:
        """
        :param default_text: The text used for an image that has no hover text of its own.
        :return: The dict representation of these assets, with unset images left out.
        """
        d = {}
        if self.large_image:
            d["large_image"] = self.large_image
            d["large_text"] = self.large_text or default_text

        if self.small_image:
            d["small_image"] = self.small_image
            d["small_text"] = self.small_text or default_text

        return d


@dataclass
class Party:
    """
    Represents the party the user is in.
    """

    #: The ID of this party. Generated when sent if a size is set.
    id: str = ""

    #: The size of the party, as ``[current, max]``.
    size: Optional[List[int]] = None

    @property
    def has_size(self) -> bool:
        """
        :return: If this party has a complete ``[current, max]`` size.
        """
        return self.size is not None and len(self.size) == 2

    def to_dict(self) -> dict:
        d = {}
        if self.id:
            d["id"] = self.id
        if self.size:
            d["size"] = list(self.size)

        return d


@dataclass
class Button:
    """
    A button shown under the activity, linking to a URL.
    """

    label: str
    url: str

    def to_dict(self) -> dict:
        return {"label": self.label, "url": self.url}


def filter_buttons(buttons: List[Button]) -> List[Button]:
    """
    Cleans up a list of buttons before they are sent.

    Labels and URLs are stripped of whitespace. Buttons with an empty label or URL, or with a URL
    that is not http(s), are dropped. Only the first :data:`MAX_BUTTONS` survivors are kept.

    :param buttons: The buttons to filter.
    :return: A new list of :class:`.Button`.
    """
    valid = []
    for button in buttons:
        label = button.label.strip()
        url = button.url.strip()
        if not label or not url or not url.startswith(BUTTON_URL_SCHEMES):
            continue

        valid.append(Button(label=label, url=url))
        if len(valid) == MAX_BUTTONS:
            break

    return valid


@dataclass
class Activity:
    """
    Represents a Rich Presence activity. This class can be created safely for usage with
    :class:`.IPCClient`.

    .. code-block:: python3

        activity = Activity(state="In a match", details="Ranked",
                            assets=Assets(large_image="logo"),
                            buttons=[Button("Website", "https://example.com")])

    """

    #: The :class:`.ActivityType` of this activity.
    type: ActivityType = ActivityType.PLAYING

    #: The user's current party status.
    state: str = ""

    #: What the user is currently doing.
    details: str = ""

    #: The :class:`.Timestamps` for this activity.
    timestamps: Optional[Timestamps] = None

    #: The :class:`.Assets` for this activity.
    assets: Optional[Assets] = None

    #: The :class:`.Party` for this activity.
    party: Optional[Party] = None

    #: A mapping of secret kind (``join``, ``spectate``, ``match``) to secret.
    secrets: Dict[str, str] = field(default_factory=dict)

    #: Up to two :class:`.Button` objects.
    buttons: List[Button] = field(default_factory=list)

    def is_empty(self) -> bool:
        """
        :return: If this activity has nothing worth publishing.
        """
        return (not self.state
                and not self.details
                and self.timestamps is None
                and self.assets is None
                and self.party is None
                and not self.secrets
                and not self.buttons)

    def validate(self) -> None:
        """
        Checks the text fields against the limits Discord enforces.

        :raises ValueError: If ``state`` or ``details`` is too long.
        """
        for name in ("state", "details"):
            value = getattr(self, name)
            if value is not None and len(value) > MAX_TEXT_LENGTH:
                raise ValueError("Field '{}' cannot be longer than {} characters"
                                 .format(name, MAX_TEXT_LENGTH))

    def to_payload(self, id_factory: Callable[[], str]) -> dict:
        """
        Builds the ``activity`` document sent with a ``SET_ACTIVITY`` command.

        A party with a full size but no ID is given one from ``id_factory``. The ID is kept on
        the party, so sending this activity again reuses it.

        :param id_factory: A callable returning a new unique string.
        :return: The dict representation of this activity.
        """
        self.validate()

        if self.party is not None and self.party.has_size and not self.party.id:
            self.party.id = id_factory()

        d = {"type": int(self.type)}
        if self.state:
            d["state"] = self.state
        if self.details:
            d["details"] = self.details
        if self.timestamps is not None and self.timestamps.is_set():
            d["timestamps"] = self.timestamps.to_dict()
        if self.party is not None and self.party.has_size:
            d["party"] = self.party.to_dict()
        if self.secrets:
            d["secrets"] = dict(self.secrets)

        buttons = filter_buttons(self.buttons)
        if buttons:
            d["buttons"] = [button.to_dict() for button in buttons]

        if self.assets is not None:
            d["assets"] = self.assets.to_dict(default_text=self.state)

        return d
