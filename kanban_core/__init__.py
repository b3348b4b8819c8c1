# kanban-core: card ordering and dependency integrity for Kanban/Gantt boards
#
# Components:
#   schema.py       - Data model (Card, Column, Board, Relationship, WipLimitType)
#   positioning.py  - Gapped ordering keys, renumbering
#   transaction.py  - Drag/drop move protocol with atomic commit
#   dependencies.py - Dependency graph, cycle checks, topological order
#   analytics.py    - Graph stats and critical path estimate
#   swimlanes.py    - Lane projection by assignee / priority / label
#   events.py       - Event bridge for host integration
#   engine.py       - BoardEngine facade tying the above to one board
#   config.py       - YAML-backed engine configuration
#   loader.py       - Board files (YAML/JSON)
#   cli.py          - kanban-core command line

__version__ = "0.1.0"
