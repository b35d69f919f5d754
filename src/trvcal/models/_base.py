"""Base model for device telemetry payloads.

Every payload model inherits from :class:`TelemetryModel`, which

* ignores keys it does not declare (Zigbee2MQTT publishes the full device
  state, of which only a few keys matter here),
* rejects ``NaN``/``Infinity`` so the calibration arithmetic only ever sees
  finite numbers,
* is frozen, so a decoded reading can be shared between the store and
  snapshot copies without defensive copying.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class TelemetryModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        allow_inf_nan=False,
    )
