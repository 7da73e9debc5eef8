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

from providers import google_analytics
from providers.base import ProviderError, is_configured

MISSING_CONFIG_MESSAGE = (
    "Missing GA_PROPERTY_ID, GA_CLIENT_EMAIL, or GA_PRIVATE_KEY environment variables."
)


def fetch_realtime_report(settings) -> dict:
    """
    Returns the realtime GA summary for the configured property.

    Raises:
        ProviderError: 400 when the GA settings are incomplete, otherwise the
            status of the failed report request.
    """
    credentials = (settings.ga_property_id, settings.ga_client_email, settings.ga_private_key)
    if not all(is_configured(value) for value in credentials):
        raise ProviderError(400, MISSING_CONFIG_MESSAGE)
    return google_analytics.fetch_realtime_report(*credentials)
