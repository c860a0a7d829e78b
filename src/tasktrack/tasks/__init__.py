"""
Task subsystem.

Components:
- task_models.py: data structures (Task, Project, Tag, TaskStatus, Snapshot)
- task_index.py: secondary id-buckets by project/tag/status/priority
- index_store.py: in-memory entity store that keeps the index in step
- query.py: FilterSpec + QueryEngine (intersect, scan, hydrate, sort)
- query_parser.py: free-text query string -> FilterSpec
- validation.py: input validation and entity factories
- services.py: task/project/tag/search services used by controllers
- repository.py: store + services + snapshot storage
"""
