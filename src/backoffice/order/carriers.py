"""Known shipping carriers and their public tracking pages.

Used to fill in a tracking URL when staff record a shipment without one.
Unknown carriers are accepted; their shipments simply carry no derived URL.
"""

_TRACKING_URLS = {
    "fedex": "https://www.fedex.com/fedextrack/?trknbr={tracking_number}",
    "dhl": "https://www.dhl.com/en/express/tracking.html?AWB={tracking_number}",
    "ups": "https://www.ups.com/track?tracknum={tracking_number}",
    "usps": "https://tools.usps.com/go/TrackConfirmAction?tLabels={tracking_number}",
    "aramex": "https://www.aramex.com/track/results?ShipmentNumber={tracking_number}",
    "sendy": "https://app.sendyit.com/tracking/{tracking_number}",
    "g4s": "https://www.g4s.com/en-ke/track?ref={tracking_number}",
    "posta": "https://www.posta.co.ke/track/{tracking_number}",
    "wells": "https://www.wellsfargo.co.ke/tracking/{tracking_number}",
}

_ALIASES = {
    "g4s kenya": "g4s",
    "posta kenya": "posta",
    "wells fargo kenya": "wells",
    "sendy (kenya)": "sendy",
}


def normalize_carrier(carrier: str) -> str:
    key = (carrier or "").strip().lower()
    return _ALIASES.get(key, key)


def tracking_url_for(carrier: str, tracking_number: str) -> str:
    """Return the carrier's tracking page for ``tracking_number``, or ``""``."""
    template = _TRACKING_URLS.get(normalize_carrier(carrier))
    if template is None or not tracking_number:
        return ""
    return template.format(tracking_number=tracking_number)
