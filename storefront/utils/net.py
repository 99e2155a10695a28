# storefront/utils/net.py

def parse_coord(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None

def clamp_lat_lng(lat, lng):
    if lat is not None and not (-90.0 <= lat <= 90.0):
        lat = None
    if lng is not None and not (-180.0 <= lng <= 180.0):
        lng = None
    return lat, lng

def parse_location(raw):
    """{lat, lng} from a request body; None unless both coordinates are valid."""
    if not isinstance(raw, dict):
        return None
    lat, lng = clamp_lat_lng(parse_coord(raw.get("lat")), parse_coord(raw.get("lng")))
    if lat is None or lng is None:
        return None
    return {"lat": lat, "lng": lng}
