# Configuration constants for the GMC Geiger counter client

# Serial communication settings
DEFAULT_PORT = "/dev/ttyUSB0"   # Used when neither --port nor GMC_PORT is given
DEFAULT_BAUD_RATE = 115200      # GMC-320+ default; GMC-300 V3.xx uses 57600
SERIAL_TIMEOUT = 0.5            # Blocking read timeout in seconds
OPEN_VERSION_ATTEMPTS = 3       # GETVER tries before giving up on a port
VERSION_LENGTH = 14             # Hardware model + firmware version

# History flash layout
FLASH_PAGE_SIZE = 4096          # Bytes returned by one SPIR request
FLASH_LAST_ADDRESS = 0x0F0000   # Highest page address probed by the bulk reader
HISTORY_RESTARTS = 3            # Bulk read restarts after an empty page
FILLER_BYTE = 0xFF              # Erased flash

# Dose rate derivation
CPM_PER_USV_H = 200.0           # GMC-320+: 200 cpm == 1.0 uSv/h
CPS_WINDOW = 60                 # Samples summed for per-second cpm

# Export settings
EXCEL_SHEET_NAME = "History"
EXPORT_COLUMNS = ("time", "cps", "cpm", "usv_per_hour")

# Chart settings
PLOT_FIGURE_SIZE = (10, 4)      # Plot figure size (width, height)
PLOT_DPI = 100                  # Plot resolution
DECIMATE_TARGET = 4000          # Target points when decimating large datasets

# CLI table output
TABLE_ROWS = 25                 # Rows printed by `gmc decode` unless --limit is given
