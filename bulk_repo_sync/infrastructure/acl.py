from typing import Any, Dict, List
from urllib.parse import quote


class DevOpsTranslator:
    """
    Anti-corruption layer that translates raw DevOps REST list responses into plain name lists.
    """

    @staticmethod
    def to_names(payload: Dict[str, Any]) -> List[str]:
        """
        Extracts the names from a `{"count": n, "value": [...]}` list response.

        Args:
            payload (Dict[str, Any]): The decoded JSON body.

        Returns:
            List[str]: Non-blank names in response order.
        """
        items = payload.get('value') or []
        names = []
        for item in items:
            if not isinstance(item, dict):
                continue
            name = item.get('name')
            if isinstance(name, str) and name.strip():
                names.append(name)
        return names

    @staticmethod
    def clone_url(base_url: str, project: str, repository: str) -> str:
        """Builds the HTTPS clone URL of a repository."""
        return f"{base_url.rstrip('/')}/{quote(project, safe='')}/_git/{quote(repository, safe='')}"
