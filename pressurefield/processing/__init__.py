from pressurefield.processing.normalizer import PressureNormalizer, PressureReading, normalize

__all__ = ["PressureNormalizer", "PressureReading", "normalize"]
