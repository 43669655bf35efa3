"""Challenge and milestone seed data.

Seeding is an upsert keyed on the stable string ids, so running it twice is a
no-op and edits to the seed lists propagate on the next run.
"""

from __future__ import annotations

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from lakequest.db.models import Challenge, Milestone

logger = logging.getLogger(__name__)


def _hints(*texts: str) -> list[dict]:
    costs = (5, 10, 20)
    return [{"level": i + 1, "cost": costs[i], "text": text} for i, text in enumerate(texts)]


CHALLENGE_SEED_DATA: list[dict] = [
    # SQL Shore: Selection Strait
    {
        "id": "sql_shore_1",
        "island_id": "sql_shore",
        "section_id": "shores_of_selection",
        "order_index": 1,
        "title": "The Harbor Manifest",
        "description": "Select ALL columns from the ships table and return the complete dataset without any filtering",
        "difficulty": 1,
        "hints": _hints(
            "Use the SELECT keyword to retrieve data from a table.",
            "The asterisk (*) symbol selects all columns.",
            "The complete query is: SELECT * FROM ships;",
        ),
        "time_estimate_minutes": 5,
        "expected_output": {"type": "exact_match", "exact_rows": 10, "required_columns": ["id", "name", "type", "captain_id"]},
        "xp_reward": 50,
    },
    {
        "id": "sql_shore_2",
        "island_id": "sql_shore",
        "section_id": "shores_of_selection",
        "order_index": 2,
        "title": "Captain's Call",
        "description": "Select only the name and type columns, filtering where captain_id equals 5",
        "difficulty": 1,
        "hints": _hints(
            "List specific column names after SELECT, separated by commas.",
            "Use WHERE clause to filter: WHERE captain_id = 5",
            "SELECT name, type FROM ships WHERE captain_id = 5;",
        ),
        "time_estimate_minutes": 5,
        "expected_output": {"type": "exact_match", "exact_rows": 2, "required_columns": ["name", "type"]},
        "xp_reward": 60,
    },
    {
        "id": "sql_shore_3",
        "island_id": "sql_shore",
        "section_id": "shores_of_selection",
        "order_index": 3,
        "title": "Cargo Weight Check",
        "description": "Select all columns from ships where cargo_weight is greater than 5000",
        "difficulty": 2,
        "hints": _hints(
            "Use comparison operators: >, <, =, >=, <=",
            "WHERE cargo_weight > 5000",
            "SELECT * FROM ships WHERE cargo_weight > 5000;",
        ),
        "time_estimate_minutes": 8,
        "expected_output": {"type": "row_count", "exact_rows": 6},
        "xp_reward": 80,
    },
    {
        "id": "sql_shore_4",
        "island_id": "sql_shore",
        "section_id": "shores_of_selection",
        "order_index": 4,
        "title": "Port of Origin",
        "description": 'Select all ship information where port is either "Tortuga" OR "Port Royal"',
        "difficulty": 2,
        "hints": _hints(
            "The OR operator allows multiple conditions.",
            "Strings must be in single quotes: 'Tortuga'",
            "SELECT * FROM ships WHERE port = 'Tortuga' OR port = 'Port Royal';",
        ),
        "time_estimate_minutes": 10,
        "expected_output": {"type": "row_count", "exact_rows": 6},
        "xp_reward": 80,
    },
    {
        "id": "sql_shore_5",
        "island_id": "sql_shore",
        "section_id": "shores_of_selection",
        "order_index": 5,
        "title": "The Late Arrivals",
        "description": "Select all columns from ships where arrival_date is after '2024-01-15' and order by arrival_date descending",
        "difficulty": 2,
        "hints": _hints(
            "Dates can be compared like strings: > '2024-01-15'",
            "ORDER BY column_name DESC sorts newest first",
            "SELECT * FROM ships WHERE arrival_date > '2024-01-15' ORDER BY arrival_date DESC;",
        ),
        "time_estimate_minutes": 12,
        "expected_output": {"type": "ordered", "exact_rows": 5},
        "xp_reward": 100,
    },
    # SQL Shore: Join Junction
    {
        "id": "sql_shore_6",
        "island_id": "sql_shore",
        "section_id": "join_junction",
        "order_index": 6,
        "title": "Captains & Their Ships",
        "description": "Join ships with captains table, showing ship name, ship type, captain name, and captain rank",
        "difficulty": 2,
        "hints": _hints(
            "Use INNER JOIN to combine tables on a common column.",
            "ships.captain_id links to captains.id",
            "SELECT s.name, s.type, c.name, c.rank FROM ships s INNER JOIN captains c ON s.captain_id = c.id;",
        ),
        "time_estimate_minutes": 15,
        "expected_output": {"type": "row_count", "exact_rows": 10, "min_columns": 4, "requires_join": True},
        "xp_reward": 120,
    },
    {
        "id": "sql_shore_7",
        "island_id": "sql_shore",
        "section_id": "join_junction",
        "order_index": 7,
        "title": "Crew Roster",
        "description": "Use LEFT JOIN to include all ships, showing ship name, crew member name, role, and salary",
        "difficulty": 3,
        "hints": _hints(
            "LEFT JOIN keeps all rows from the left table.",
            "crew.ship_id links to ships.id",
            "SELECT s.name AS ship, c.name AS crew_member, c.role, c.salary FROM ships s LEFT JOIN crew c ON s.id = c.ship_id;",
        ),
        "time_estimate_minutes": 18,
        "expected_output": {"type": "row_count_min", "min_rows": 10, "requires_join": True},
        "xp_reward": 140,
    },
    # SQL Shore: Aggregation Atoll
    {
        "id": "sql_shore_8",
        "island_id": "sql_shore",
        "section_id": "aggregation_atoll",
        "order_index": 8,
        "title": "Fleet Statistics",
        "description": "Calculate COUNT of ships, SUM of cargo_weight, and AVG cargo_weight",
        "difficulty": 3,
        "hints": _hints(
            "Aggregate functions: COUNT(), SUM(), AVG()",
            "Use AS to give columns readable names.",
            "SELECT COUNT(*) AS total_ships, SUM(cargo_weight) AS total_cargo, AVG(cargo_weight) AS avg_cargo FROM ships;",
        ),
        "time_estimate_minutes": 15,
        "expected_output": {"type": "single_row", "exact_rows": 1, "min_columns": 3},
        "xp_reward": 150,
    },
    {
        "id": "sql_shore_9",
        "island_id": "sql_shore",
        "section_id": "aggregation_atoll",
        "order_index": 9,
        "title": "Ships by Type",
        "description": "GROUP BY ship type, COUNT ships, SUM cargo_weight, ORDER BY count descending",
        "difficulty": 3,
        "hints": _hints(
            "GROUP BY collapses rows that share a value.",
            "COUNT(*) and SUM(cargo_weight) work per group.",
            "SELECT type, COUNT(*) AS ship_count, SUM(cargo_weight) AS total_cargo FROM ships GROUP BY type ORDER BY ship_count DESC;",
        ),
        "time_estimate_minutes": 15,
        "expected_output": {"type": "grouped", "min_rows": 1, "required_columns": ["type"]},
        "xp_reward": 150,
    },
    {
        "id": "sql_shore_10",
        "island_id": "sql_shore",
        "section_id": "aggregation_atoll",
        "order_index": 10,
        "title": "Treasure Analysis",
        "description": "JOIN ships with cargo, GROUP BY ship, calculate SUM of cargo value, use HAVING to filter groups > 5000",
        "difficulty": 4,
        "hints": _hints(
            "HAVING filters after GROUP BY (like WHERE for groups).",
            "cargo.ship_id links to ships.id",
            "SELECT s.name, SUM(c.value) AS total_value FROM ships s INNER JOIN cargo c ON s.id = c.ship_id GROUP BY s.name HAVING SUM(c.value) > 5000;",
        ),
        "time_estimate_minutes": 25,
        "expected_output": {"type": "filtered_aggregate", "min_rows": 1, "requires_join": True},
        "xp_reward": 200,
    },
    # Python Peninsula: DataFrame Dunes
    {
        "id": "python_peninsula_1",
        "island_id": "python_peninsula",
        "section_id": "dataframe_dunes",
        "order_index": 1,
        "title": "Raise the DataFrame",
        "description": "Create a DataFrame from the ships list and show its schema and first rows",
        "difficulty": 2,
        "hints": _hints(
            "spark.createDataFrame() builds a DataFrame from a list of rows.",
            "df.printSchema() and df.show() inspect it.",
            "df = spark.createDataFrame(ships); df.show()",
        ),
        "time_estimate_minutes": 10,
        "expected_output": {"type": "row_count_min", "min_rows": 1, "required_columns": ["id", "name"]},
        "xp_reward": 100,
    },
    {
        "id": "python_peninsula_2",
        "island_id": "python_peninsula",
        "section_id": "transformation_trail",
        "order_index": 2,
        "title": "Heavy Cargo Filter",
        "description": "Filter the ships DataFrame to cargo_weight above 5000 and select name and cargo_weight",
        "difficulty": 2,
        "hints": _hints(
            "df.filter() takes a column expression.",
            "F.col('cargo_weight') > 5000",
            "df.filter(F.col('cargo_weight') > 5000).select('name', 'cargo_weight')",
        ),
        "time_estimate_minutes": 10,
        "expected_output": {"type": "row_count_min", "min_rows": 1, "required_columns": ["name", "cargo_weight"]},
        "xp_reward": 120,
    },
    {
        "id": "python_peninsula_3",
        "island_id": "python_peninsula",
        "section_id": "transformation_trail",
        "order_index": 3,
        "title": "Cargo by Port",
        "description": "Group ships by port and aggregate total cargo_weight per port, highest first",
        "difficulty": 3,
        "hints": _hints(
            "groupBy() followed by agg() aggregates per group.",
            "F.sum('cargo_weight').alias('total_cargo')",
            "df.groupBy('port').agg(F.sum('cargo_weight').alias('total_cargo')).orderBy(F.desc('total_cargo'))",
        ),
        "time_estimate_minutes": 15,
        "expected_output": {"type": "grouped", "min_rows": 1, "required_columns": ["port", "total_cargo"]},
        "xp_reward": 150,
    },
]


MILESTONE_SEED_DATA: list[dict] = [
    {
        "id": "xp_500",
        "name": "Rising Navigator",
        "description": "Earn 500 total XP",
        "milestone_type": "xp",
        "threshold": 500,
        "xp_reward": 50,
        "sort_order": 1,
    },
    {
        "id": "xp_2500",
        "name": "Seasoned Sailor",
        "description": "Earn 2,500 total XP",
        "milestone_type": "xp",
        "threshold": 2500,
        "xp_reward": 150,
        "sort_order": 2,
    },
    {
        "id": "challenges_5",
        "name": "Five Down",
        "description": "Complete 5 challenges",
        "milestone_type": "challenges",
        "threshold": 5,
        "xp_reward": 100,
        "sort_order": 3,
    },
    {
        "id": "challenges_10",
        "name": "Charted Waters",
        "description": "Complete 10 challenges",
        "milestone_type": "challenges",
        "threshold": 10,
        "xp_reward": 250,
        "sort_order": 4,
    },
    {
        "id": "streak_7",
        "name": "Week at Sea",
        "description": "Log in 7 days in a row",
        "milestone_type": "streak",
        "threshold": 7,
        "xp_reward": 75,
        "sort_order": 5,
    },
]


def _insert_for(db: AsyncSession):
    """Dialect-specific INSERT that supports ON CONFLICT."""
    if db.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


async def _upsert(db: AsyncSession, model, rows: list[dict]) -> int:
    insert = _insert_for(db)
    for row in rows:
        stmt = insert(model).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={key: stmt.excluded[key] for key in row if key != "id"},
        )
        await db.execute(stmt)
    return len(rows)


async def seed_challenges(db: AsyncSession) -> int:
    """Upsert all challenge definitions. Returns number of challenges seeded."""
    seeded = await _upsert(db, Challenge, CHALLENGE_SEED_DATA)
    await db.commit()
    logger.info("Seeded %d challenges", seeded)
    return seeded


async def seed_milestones(db: AsyncSession) -> int:
    """Upsert default milestone definitions."""
    seeded = await _upsert(db, Milestone, MILESTONE_SEED_DATA)
    await db.commit()
    logger.info("Seeded %d milestones", seeded)
    return seeded
