"""Delivery identity of a message as seen by the client.

A message is in exactly one of three states:

* ``Provisional`` - created locally, send in flight, keyed by a session-scoped id.
* ``Confirmed``   - known to the server, keyed by the server-assigned id.
* ``Failed``      - send or upload failed; still keyed by the provisional id.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from chat_client.domain.value_objects.ids import MessageId, ProvisionalId


@dataclass(frozen=True, slots=True)
class Provisional:
    id: ProvisionalId


@dataclass(frozen=True, slots=True)
class Confirmed:
    id: MessageId


@dataclass(frozen=True, slots=True)
class Failed:
    id: ProvisionalId


Delivery = Union[Provisional, Confirmed, Failed]
