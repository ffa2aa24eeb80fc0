# Volunteer board: kanban lists of volunteer cards over a quota-limited key/value store
#
# Components:
#   schema.py      - Data model (VolunteerCard, BoardList, ChecklistItem, Attachment)
#   storage.py     - SQLite-backed "local storage" with a capacity ceiling
#   store.py       - Volunteer/list persistence on top of local storage
#   autosave.py    - Debounced saving of board state
#   board.py       - In-memory board operations (lists, cards, aggregate list)
#   images.py      - Image compression to fit the storage quota
#   csv_service.py - CSV import/export
#   checklist.py   - Master onboarding checklist and per-volunteer progress
#   lgl.py         - Little Green Light API client and webhook processing
#   reports.py     - CSV/HTML report generation
#   backup.py      - Backup and restore of stored data
#   debug_log.py   - Persistent debug log ring buffer
#   config.py      - YAML + environment configuration
