"""
Dependency resolution for services to determine creation order.
"""
from typing import List

from ..exceptions import ValidationError
from ..MODELS.definition import Definition


class DependencyResolver:
    """
    Resolves the order in which a stack's containers are created.
    """
    def resolve_order(self, definition: Definition) -> List[str]:
        """
        Determines the creation order using a depth-first topological sort.
        Services without dependencies keep their declaration order.

        :param definition: The parsed stack definition.
        :return: Service names in the order they should be created.
        :raises ValidationError: If a circular dependency is detected.
        """
        services = definition.services
        dependencies = {name: svc.depends_on for name, svc in services.items()}

        ordered: List[str] = []
        visited = set()
        processing = set()

        def visit(name):
            if name in processing:
                raise ValidationError(
                    f"Circular dependency detected involving service '{name}'",
                    details={"service": name},
                    suggestions=["Remove the cycle from the depends_on entries"],
                )
            if name not in visited:
                processing.add(name)
                for dep in dependencies.get(name, []):
                    if dep in services:  # Only depend on services defined in the document
                        visit(dep)
                processing.remove(name)
                visited.add(name)
                ordered.append(name)

        for name in services:
            visit(name)

        return ordered
