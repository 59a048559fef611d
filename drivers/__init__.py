from .playwright_driver import PlaywrightDriver, PlaywrightSessionFactory

__all__ = ["PlaywrightDriver", "PlaywrightSessionFactory"]
