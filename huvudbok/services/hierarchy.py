"""
Kontohierarki - navigering i trädet av konton

Trädet lagras som en arena av noder (id -> nod) med explicit
föräldrareferens och ett separat barnindex sorterat på kod.
All traversering sker iterativt med explicit stack.
"""
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional


@dataclass
class AccountNode:
    """Nod i kontoträdet"""
    id: int
    code: str
    parent_id: Optional[int] = None


class AccountTree:
    """
    Förälder/barn-träd över en mängd konton

    Ett konto vars förälder inte finns bland de laddade kontona
    (t.ex. inaktiv eller av annan typ) behandlas som rot.
    """

    def __init__(self, nodes: Iterable[AccountNode]):
        self._nodes: dict[int, AccountNode] = {}
        for node in nodes:
            self._nodes[node.id] = node

        self._children: dict[int, list[int]] = {}
        self._roots: list[int] = []
        for node in self._nodes.values():
            if node.parent_id is not None and node.parent_id in self._nodes:
                self._children.setdefault(node.parent_id, []).append(node.id)
            else:
                self._roots.append(node.id)

        self._roots.sort(key=self._code)
        for child_ids in self._children.values():
            child_ids.sort(key=self._code)

    @classmethod
    def from_accounts(cls, accounts) -> "AccountTree":
        """Bygg träd från Account-objekt"""
        return cls(AccountNode(a.id, a.code, a.parent_id) for a in accounts)

    def _code(self, node_id: int) -> str:
        return self._nodes[node_id].code

    def __contains__(self, node_id: int) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: int) -> AccountNode:
        return self._nodes[node_id]

    def roots(self) -> list[int]:
        return list(self._roots)

    def children(self, node_id: int) -> list[int]:
        return list(self._children.get(node_id, []))

    def parent(self, node_id: int) -> Optional[int]:
        parent_id = self._nodes[node_id].parent_id
        return parent_id if parent_id in self._nodes else None

    def is_leaf(self, node_id: int) -> bool:
        return not self._children.get(node_id)

    def preorder(self) -> Iterator[tuple[int, int]]:
        """
        Traversera i förordning: (id, djup), rötter har djup 1

        Barn besöks i kodordning, vilket ger en stabil presentation.
        """
        stack = [(root_id, 1) for root_id in reversed(self._roots)]
        while stack:
            node_id, depth = stack.pop()
            yield node_id, depth
            for child_id in reversed(self._children.get(node_id, [])):
                stack.append((child_id, depth + 1))

    def depths(self) -> dict[int, int]:
        return dict(self.preorder())

    def postorder(self) -> list[int]:
        """Barn före föräldrar (för summering uppåt)"""
        return [node_id for node_id, _ in reversed(list(self.preorder()))]

    def ancestors(self, node_id: int) -> list[int]:
        """Förfäder från närmaste förälder upp till roten"""
        result = []
        seen = {node_id}
        current = self.parent(node_id)
        while current is not None:
            if current in seen:
                # Cykel i lagrad data
                break
            result.append(current)
            seen.add(current)
            current = self.parent(current)
        return result

    def descendants(self, node_id: int) -> list[int]:
        result = []
        stack = list(reversed(self._children.get(node_id, [])))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self._children.get(current, [])))
        return result

    def leaf_descendants(self, node_id: int) -> list[int]:
        """Alla löv under noden (noden själv om den är ett löv)"""
        if self.is_leaf(node_id):
            return [node_id]
        return [d for d in self.descendants(node_id) if self.is_leaf(d)]

    def leaves(self) -> list[int]:
        return [node_id for node_id, _ in self.preorder() if self.is_leaf(node_id)]


def would_create_cycle(parent_of: dict, child_id: int, new_parent_id: Optional[int]) -> bool:
    """
    Skulle `child_id` under `new_parent_id` ge en cykel?

    parent_of: id -> förälder-id för alla konton i kontoplanen.
    Vandrar förfäderna från den tilltänkta föräldern.
    """
    if new_parent_id is None:
        return False
    seen = set()
    current = new_parent_id
    while current is not None:
        if current == child_id:
            return True
        if current in seen:
            # Befintlig cykel som inte passerar child_id
            return True
        seen.add(current)
        current = parent_of.get(current)
    return False
