from collections import defaultdict
from itertools import combinations
from typing import Dict, Iterable, List, Set

import networkx as nx

from .models import Course


def student_index(courses: Iterable[Course]) -> Dict[str, Set[str]]:
    """Invert rosters: student id -> ids of the courses they sit."""
    index: Dict[str, Set[str]] = defaultdict(set)
    for course in courses:
        for sid in course.students:
            index[sid].add(course.id)
    return dict(index)


def build_conflict_graph(courses: Iterable[Course]) -> nx.Graph:
    """Join two courses when they share a student; edge weight counts the shared students.

    Edges come from each student's own course list, so the cost grows with
    enrollments rather than with every pair of courses.
    """
    courses = list(courses)
    G = nx.Graph()
    G.add_nodes_from(c.id for c in courses)
    for course_ids in student_index(courses).values():
        for u, v in combinations(sorted(course_ids), 2):
            if G.has_edge(u, v):
                G[u][v]['weight'] += 1
            else:
                G.add_edge(u, v, weight=1)
    return G


def shared_students(a: Course, b: Course) -> List[str]:
    return sorted(a.students & b.students)


def greedy_clique_lower_bound(G: nx.Graph) -> int:
    """Fast lower bound on the number of distinct slots a conflict-free schedule needs.

    Picks the highest-degree node, then greedily grows a clique by repeatedly
    adding a node adjacent to every current member.
    """
    if G.number_of_nodes() == 0:
        return 0
    seed = max(G.nodes(), key=lambda u: (G.degree(u), u))
    clique = {seed}
    candidates = set(G.neighbors(seed))
    while candidates:
        u = max(candidates, key=lambda v: (G.degree(v), v))
        if all(G.has_edge(u, w) for w in clique):
            clique.add(u)
            candidates &= set(G.neighbors(u))
        else:
            candidates.discard(u)
    return len(clique)
