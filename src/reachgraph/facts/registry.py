"""Provider registry for selecting the fact provider of a file."""

from reachgraph.facts.base import FactProvider
from reachgraph.facts.models import FactResult
from reachgraph.facts.python_provider import PythonFactProvider
from reachgraph.facts.regex_provider import RegexFactProvider


class ProviderRegistry:
    """Registry that selects the appropriate fact provider for a file.

    Providers are tried in order, so a dedicated provider listed first takes
    precedence over the generic regex provider for shared extensions.
    """

    def __init__(self, providers: list[FactProvider] | None = None):
        """Initialize registry.

        Args:
            providers: Providers in priority order. Defaults to the Python AST
                provider followed by the regex provider.
        """
        if providers is None:
            providers = [PythonFactProvider(), RegexFactProvider()]
        self._providers: list[FactProvider] = list(providers)

    def get_provider(self, path: str) -> FactProvider | None:
        """Get the provider for a file, or None if no provider handles it."""
        for provider in self._providers:
            if provider.can_extract(path):
                return provider
        return None

    def supports(self, path: str) -> bool:
        """True if some provider handles this file's extension."""
        return self.get_provider(path) is not None

    def extract(self, path: str, content: str) -> FactResult:
        """Extract facts from a file using the appropriate provider.

        Args:
            path: Project-relative path.
            content: File content.

        Returns:
            FactResult from the selected provider, or a failure when no
            provider handles the file.
        """
        provider = self.get_provider(path)
        if provider is None:
            return FactResult.failure(path, f"no fact provider for {path}")
        return provider.extract(path, content)

    @property
    def supported_languages(self) -> list[str]:
        """Get list of provider language names."""
        return [p.language_name for p in self._providers]
