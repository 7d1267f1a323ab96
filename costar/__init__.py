"""costar — incremental stargazer graph crawler."""

__version__ = "0.1.0"
