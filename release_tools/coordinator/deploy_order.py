"""Deploy-order (wave) computation over a release's repository dependencies.

Each repository gets a wave number: 1 when it depends on nothing in the
release, otherwise one more than the highest wave among its dependencies.
Repositories sharing a wave may deploy together.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Optional, Sequence, Union

from release_tools.errors import CycleError, DeployOrderError, ParseError
from release_tools.models.release import ReleaseRepo, decode_name_list

# Upper bound on nodes per computation; releases span tens of repositories
DEFAULT_MAX_NODES = 10_000

DependsOn = Union[Sequence[str], str, None]


@dataclass(frozen=True)
class RepoNode:
    """One repository participating in a release.

    ``depends_on`` is either a sequence of repository names or the stored
    JSON array text; text is decoded when the order is computed.
    """

    id: Hashable
    name: str
    depends_on: DependsOn = ()

    def dependency_names(self) -> list[str]:
        """Return declared dependency names.

        Raises:
            ParseError: If ``depends_on`` is malformed text or a sequence
                holding anything other than strings.
        """
        if self.depends_on is None:
            return []
        if isinstance(self.depends_on, str):
            return decode_name_list(self.depends_on, "depends_on")
        try:
            names = list(self.depends_on)
        except TypeError as e:
            raise ParseError("depends_on", repr(self.depends_on), str(e)) from e
        if not all(isinstance(name, str) for name in names):
            raise ParseError(
                "depends_on", repr(self.depends_on), "expected a sequence of strings"
            )
        return names


def nodes_from_repos(repos: Iterable[ReleaseRepo]) -> list[RepoNode]:
    """Build calculator input from stored release repositories."""
    return [
        RepoNode(id=repo.id, name=repo.repo_name, depends_on=repo.depends_on_raw)
        for repo in repos
    ]


class DeployOrderCalculator:
    """Computes wave numbers for a set of repository nodes."""

    def __init__(self, max_nodes: int = DEFAULT_MAX_NODES):
        """Initialize the calculator.

        Args:
            max_nodes: Refuse inputs larger than this.
        """
        self.max_nodes = max_nodes

    def compute(self, nodes: Iterable[RepoNode]) -> dict[Hashable, int]:
        """Compute the wave of every node.

        Dependency names that match no node are ignored. When names repeat,
        the last node with that name wins.

        Args:
            nodes: Repositories in the release.

        Returns:
            Mapping of node id to wave number (1-based).

        Raises:
            ParseError: If any node's dependency text is malformed.
            CycleError: If resolvable dependencies form a cycle.
            DeployOrderError: If the input exceeds ``max_nodes``.
        """
        nodes = list(nodes)
        if len(nodes) > self.max_nodes:
            raise DeployOrderError(
                f"Too many repositories ({len(nodes)}), limit is {self.max_nodes}"
            )

        index_by_name: dict[str, int] = {}
        for i, node in enumerate(nodes):
            index_by_name[node.name] = i

        # Decode everything before traversal so bad data fails the whole call
        edges: list[list[int]] = []
        for node in nodes:
            edges.append(
                [
                    index_by_name[name]
                    for name in node.dependency_names()
                    if name in index_by_name
                ]
            )

        waves = self._assign_waves(nodes, edges)
        return {node.id: waves[i] for i, node in enumerate(nodes)}

    def _assign_waves(self, nodes: list[RepoNode], edges: list[list[int]]) -> list[int]:
        """Iterative memoized DFS over dense node indices."""
        count = len(nodes)
        waves = [0] * count
        visited = [False] * count
        on_stack = [False] * count

        for start in range(count):
            if visited[start]:
                continue

            # Frames are (node index, next edge position)
            stack: list[tuple[int, int]] = [(start, 0)]
            on_stack[start] = True

            while stack:
                current, pos = stack[-1]
                deps = edges[current]

                if pos < len(deps):
                    stack[-1] = (current, pos + 1)
                    dep = deps[pos]
                    if on_stack[dep]:
                        raise CycleError(self._cycle_path(nodes, stack, dep))
                    if not visited[dep]:
                        on_stack[dep] = True
                        stack.append((dep, 0))
                    continue

                stack.pop()
                on_stack[current] = False
                visited[current] = True
                waves[current] = 1 + max((waves[d] for d in deps), default=0)

        return waves

    @staticmethod
    def _cycle_path(
        nodes: list[RepoNode], stack: list[tuple[int, int]], repeated: int
    ) -> list[str]:
        """Names along the cycle, starting and ending at the repeated node."""
        indices = [index for index, _ in stack]
        cycle = indices[indices.index(repeated) :]
        return [nodes[i].name for i in cycle] + [nodes[repeated].name]


def compute_deploy_order(
    nodes: Iterable[RepoNode], max_nodes: int = DEFAULT_MAX_NODES
) -> dict[Hashable, int]:
    """Compute wave numbers for ``nodes``. See ``DeployOrderCalculator.compute``."""
    return DeployOrderCalculator(max_nodes=max_nodes).compute(nodes)


def group_by_wave(order: dict[Hashable, int]) -> list[list[Hashable]]:
    """Group node ids by wave.

    Args:
        order: Result of ``compute_deploy_order``.

    Returns:
        One list per wave, in wave order, each sorted by id. Ids of one
        type sort naturally; mixed types are grouped by type name first.
    """
    if not order:
        return []
    groups: list[list[Hashable]] = [[] for _ in range(max(order.values()))]
    for node_id, wave in order.items():
        groups[wave - 1].append(node_id)
    return [sorted(group, key=_id_sort_key) for group in groups]


def _id_sort_key(node_id: Hashable) -> tuple[str, Any]:
    return type(node_id).__name__, node_id


def find_unresolved_dependencies(
    nodes: Iterable[RepoNode],
) -> dict[Hashable, list[str]]:
    """Find dependency names that match no node in the set.

    The calculator ignores these silently; callers can report them as
    likely typos.

    Returns:
        Mapping of node id to its unknown dependency names. Nodes without
        unknown names are omitted.

    Raises:
        ParseError: If any node's dependency text is malformed.
    """
    nodes = list(nodes)
    names = {node.name for node in nodes}
    unresolved: dict[Hashable, list[str]] = {}
    for node in nodes:
        missing = [name for name in node.dependency_names() if name not in names]
        if missing:
            unresolved[node.id] = missing
    return unresolved


def describe_deploy_order_error(error: Optional[DeployOrderError]) -> str:
    """User-facing message for a failed computation."""
    if error is None:
        return ""
    return f"cannot compute deploy order: {error}"
