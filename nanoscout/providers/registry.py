"""Registries for inference and image providers."""

from nanoscout.providers.base import InferenceProvider
from nanoscout.providers.images import ImageProvider
from nanoscout.utils.registry import CapabilityRegistry


class InferenceRegistry(CapabilityRegistry[InferenceProvider]):
    kind = "Inference provider"


class ImageRegistry(CapabilityRegistry[ImageProvider]):
    kind = "Image provider"
