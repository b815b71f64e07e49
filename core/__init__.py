"""Stream supervision core."""
