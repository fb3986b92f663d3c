from abc import ABC, abstractmethod


class BaseImageProvider(ABC):
    """Interface every image-synthesis back-end must implement."""

    name: str = "base"

    @abstractmethod
    async def text_to_image(self, prompt: str) -> list[str]:
        """Generate one or more images for ``prompt``.

        Returns:
            Image refs (file names under the media directory), at least one.

        Raises:
            AdapterFailure: the backend failed or produced no image.
        """
        ...
