# shopdelivery/utils/distance_utils.py
import math

EARTH_RADIUS_METERS = 6371000


def distance_between(lat1, lon1, lat2, lon2):
    """Straight-line distance in meters between two coordinates (Haversine).

    This is not a road distance; actual delivery routes are longer.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c
