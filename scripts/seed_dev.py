from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import sessionmaker

from wagerboard.db.engine import make_engine
from wagerboard.models import Base
from wagerboard.standings.coordinator import SeriesRecomputeCoordinator
from wagerboard.workflows import (
    create_series,
    join_series,
    resolve_series_bet,
    series_leaderboard,
    submit_series_pick,
    update_series_status,
)


def main() -> None:
    """Seed the development database with a small office pool."""
    engine = make_engine()

    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    coordinator = SeriesRecomputeCoordinator()

    now = datetime.now(timezone.utc)

    with Session.begin() as session:
        series = create_series(
            session,
            title="Week 1 Office Pool",
            series_type="office_pool",
            description="Pick the winners of this week's games.",
            created_by="organizer_01",
            bets=[
                {"title": "Sendai vs Sapporo", "sides": ["Sendai", "Sapporo"]},
                {"title": "Osaka vs Nagoya", "sides": ["Osaka", "Nagoya"]},
                {"title": "Tokyo vs Chiba", "sides": ["Tokyo", "Chiba"]},
            ],
        )

        alice = join_series(session, series, "user_01", display_name="Alice", joined_at=now)
        bob = join_series(
            session, series, "user_02", display_name="Bob", joined_at=now + timedelta(minutes=5)
        )
        update_series_status(session, coordinator, series, "active")

        first, second, third = series.bets
        for bet, side in ((first, "Sendai"), (second, "Osaka"), (third, "Tokyo")):
            submit_series_pick(session, coordinator, alice, bet, side)
        for bet, side in ((first, "Sendai"), (second, "Nagoya"), (third, "Tokyo")):
            submit_series_pick(session, coordinator, bob, bet, side)

        resolve_series_bet(session, coordinator, first, "Sendai")
        resolve_series_bet(session, coordinator, second, "Osaka")
        resolve_series_bet(session, coordinator, third, "Tokyo")

        for row in series_leaderboard(coordinator, series):
            print(
                f"#{row['rank']} {row['display_name']}: {row['total_score']} pts "
                f"({row['win_percentage']}%) {', '.join(row['achievements'])}"
            )


if __name__ == "__main__":
    main()
