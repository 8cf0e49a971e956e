MAX_KEY_LENGTH = 256

# Persistence keys double as file names in FileStorage.
STORAGE_KEY_PATTERN = r"^[A-Za-z0-9._-]+$"
