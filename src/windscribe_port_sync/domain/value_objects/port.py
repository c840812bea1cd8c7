class Port(int):
    """TCP/UDP port number (1-65535)."""
    def __new__(cls, value: int) -> "Port":
        value = int(value)
        if not 1 <= value <= 65535:
            raise ValueError(f"Invalid port: {value}")
        return int.__new__(cls, value)
