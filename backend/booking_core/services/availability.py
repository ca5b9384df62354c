from __future__ import annotations

from datetime import date
from typing import Any, Optional, Protocol, Sequence, Tuple

from booking_core.domain.filters import FilterRules


class _BookedRoomTypes(Protocol):
    async def unavailable_room_type_ids(self, check_in: date, check_out: date) -> Sequence[Any]: ...


async def resolve_unavailable_room_types(
    bookings: _BookedRoomTypes,
    rules: FilterRules,
) -> Optional[Tuple[Any, ...]]:
    """Room types booked out for the requested window.

    None means no window was requested. A hotel stays in the results while at
    least one of its non-deleted room types is not in this set.
    """

    if rules.check_date is None:
        return None
    check_in, check_out = rules.check_date
    ids = await bookings.unavailable_room_type_ids(check_in, check_out)
    return tuple(ids)
