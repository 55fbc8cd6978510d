"""
demo.py – One-shot walk through rdd against SQLite (or any RDD_DATABASE_URL).

    RDD_LOG_LEVEL=DEBUG python src/examples/demo.py
"""

import datetime as dt
from pprint import pprint

from rdd import Column, Default, Kind, Record, Runtime, Settings, is_duplicate_key, select


# ────────────────────────────────── 1. Concrete Record ─────────────────────────────────
class Story(Record, table="stories"):
    id = Column(Kind.TEXT, primary_key=True, auto=True, default=Default.NEW_UUID)
    slug = Column(Kind.TEXT, unique_key=True)
    title = Column(Kind.TEXT)
    body = Column(Kind.NULL_TEXT)
    created_at = Column(Kind.TIMESTAMP)

    def before_append(self, params):
        if self.created_at.empty():
            self.created_at.set(dt.datetime.now(dt.timezone.utc))

    def after_commit(self, params):
        print(f"\n✅ committed story {self.id.get()} ({params.context})")

    def _format_story(self) -> str:
        return f"\nTitle: {self.title.get()}\n\n  {self.body.get()}\n\n"


# ────────────────────────────────── 2. Drive everything ────────────────────────────────
def main():
    rt = Runtime.from_settings(Settings.from_env(), Story)
    try:
        story = rt.use(Story)
        story.slug.set("first-tale")
        story.title.set("Draft")
        story.append(rt.db)
        print(f"\n→ Created {story!r}")

        with rt.db.begin() as tx:
            story.title.set("The Tale")
            story.replace(tx)

            # a savepoint that is thrown away
            sp = tx.begin()
            story.body.set("Once upon a time…")
            story.replace(sp)
            sp.rollback()

        dup = rt.use(Story)
        dup.slug.set("first-tale")
        try:
            dup.append(rt.db)
        except Exception as exc:
            if not is_duplicate_key(exc):
                raise
            print("\n→ second story with the same slug rejected")

        stories = select(rt.registry, Story, rt.db, 'SELECT * FROM "stories"')
        pprint([s.values() for s in stories], width=80)
        print(f"Formatted Story:\n{stories[0]._format_story()}")
    finally:
        rt.close()


if __name__ == "__main__":
    main()
