# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def start_of_month(value: datetime) -> datetime:
    return start_of_day(value).replace(day=1)


def previous_day_range(now: datetime) -> Tuple[datetime, datetime]:
    """Returns the full UTC day before `now` as (start, end), both inclusive."""
    yesterday = now - timedelta(days=1)
    return start_of_day(yesterday), end_of_day(yesterday)


def previous_month_range(now: datetime) -> Tuple[datetime, datetime]:
    """Returns the calendar month before `now` as (start, end), both inclusive."""
    this_month_start = start_of_month(now)
    last_month_end = this_month_start - timedelta(microseconds=1)
    return start_of_month(last_month_end), last_month_end


def next_month(month_str: str) -> str:
    """Returns the YYYY-MM month following `month_str`."""
    year, month = (int(part) for part in month_str.split("-"))
    if month == 12:
        return f"{year + 1}-01"
    return f"{year}-{month + 1:02d}"


def parse_iso_datetime(value: str) -> datetime:
    """
    Parses an ISO-8601 date or datetime string. Naive values are treated as UTC.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def as_datetime(value: Any) -> Optional[datetime]:
    """
    Normalizes stored timestamps to aware datetimes.

    Firestore returns timestamps as datetimes; older documents store epoch
    milliseconds.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return None
