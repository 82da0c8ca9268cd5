# Age fading (milliseconds)
FULL_VISIBLE_MS = 3 * 3600000    # fully visible for the first 3 hours
FLOOR_VISIBLE_MS = 12 * 3600000  # lowest visibility past 12 hours
OPACITY_FULL = 1.0
OPACITY_FLOOR = 0.1
# Linear fade between the two thresholds: 1.0 at 3h, 0.1 at 12h
OPACITY_SLOPE = -1 / 36000000
OPACITY_INTERCEPT = 1.3

# Start view when nothing else is given
DEFAULT_LAT = 44.9343
DEFAULT_LNG = -93.2624
DEFAULT_ZOOM = 11
MAX_ZOOM = 19

# Icons
DEFAULT_ICON = "📍"
ICON_GROUP_A = ("📍", "🚔", "☁️", "🚧", "🚰")
ICON_GROUP_B = ("📦", "🍕", "🔋", "🚽")
ICON_PALETTE = ICON_GROUP_A + ICON_GROUP_B

# Backend API
API_POINTS = "/api/v1/points"
API_POINT = "/api/v1/point"
API_DELETE = "/api/v1/delete"
API_SEND_VERIFICATION = "/api/v1/send_verification"
API_IS_VERIFIED = "/api/v1/is_verified"
VERIFICATION_COOKIE = "free-us-map"

# Timeouts
API_TIMEOUT_S = 15

# Location query string keys kept in shareable URLs
LOCATION_PARAMS = ("lat", "lng", "zm")

# Hosts whose links are rendered clickable in popups
LINK_HOSTS = ("twitter.com", "mobile.twitter.com")

# Viewport size of the headless map (pixels)
TILE_SIZE_PX = 256
DEFAULT_VIEWPORT_PX = (1024, 768)
