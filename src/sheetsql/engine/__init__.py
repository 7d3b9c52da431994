"""In-memory execution (joins, aggregation, SELECT pipeline, mutations).

Modules
-------
join.py       - nested-loop INNER / LEFT / RIGHT joins
aggregate.py  - GROUP BY, aggregate functions, HAVING
ordering.py   - ORDER BY / OFFSET / LIMIT helpers
select.py     - local SELECT pipeline and result formatting
mutations.py  - INSERT / UPDATE / DELETE against sheets or virtual tables
"""
