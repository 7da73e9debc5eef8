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


class BillingError(Exception):
    """Base class for credit and pricing failures surfaced to callers."""


class InvalidRequestError(BillingError):
    pass


class UserNotFoundError(BillingError):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class AccountSuspendedError(BillingError):
    def __init__(self, message: str = "Account is suspended"):
        super().__init__(message)


class InsufficientCreditsError(BillingError):
    def __init__(self, required: float, available: float):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient credits. Required: {_fmt(required)}, "
            f"Available: {_fmt(available)}"
        )


class EngineNotFoundError(BillingError):
    pass


class EngineUnavailableError(BillingError):
    pass


class PricingNotFoundError(BillingError):
    pass


class PromptRejectedError(BillingError):
    def __init__(self, message: str, flagged: list[str]):
        self.flagged = flagged
        super().__init__(message)


class RateLimitedError(BillingError):
    pass


class NotFoundError(BillingError):
    pass


def _fmt(value: float):
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value
