"""Seed the database with a demo course catalog.

Creates one course per (technology, program) pair, spread across branches
and across every price bucket, so search, filters, sorting and paging all
have something to show.

Usage:
  python -m scripts.seed_courses                  # local SQLite
  python -m scripts.seed_courses --force          # wipe & reseed local
  python -m scripts.seed_courses --database-url "postgresql+psycopg2://..."
"""
import argparse
import os
import sys
from itertools import cycle

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from catalog.db.database import SessionLocal, engine as default_engine, Base
from catalog.models import Course

BRANCHES = ["Makati", "Cebu", "Davao", "Online"]

TECHNOLOGIES = {
    "Python": "python, backend, automation",
    "JavaScript": "javascript, web, frontend",
    "React": "react, javascript, frontend",
    "Data Science": "python, pandas, machine learning",
    "UI/UX Design": "figma, design, prototyping",
    "Cybersecurity": "security, networking, linux",
}

# program -> (duration, base price in pesos)
PROGRAMS = {
    "Workshop": ("2 days", 2500),
    "Short Course": ("4 weeks", 4999),
    "Certificate": ("8 weeks", 8500),
    "Bootcamp": ("12 weeks", 18000),
}


def build_catalog() -> list[Course]:
    branches = cycle(BRANCHES)
    courses = []
    for technology, tags in TECHNOLOGIES.items():
        for program, (duration, base_price) in PROGRAMS.items():
            courses.append(Course(
                title=f"{technology} {program}",
                description=f"A {duration.lower()} {program.lower()} covering practical {technology} skills.",
                branch=next(branches),
                technology=technology,
                program=program,
                duration=duration,
                price=base_price + len(technology) * 10,
                tags=tags,
            ))
    return courses


def seed(force: bool = False, database_url: str | None = None):
    if database_url:
        eng = create_engine(database_url)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=eng)
    else:
        eng = default_engine
        Session = SessionLocal
    Base.metadata.create_all(bind=eng)
    db = Session()
    try:
        if not force and db.query(Course).count() > 0:
            print("Database already has courses. Use --force to seed anyway.")
            return

        if force:
            db.query(Course).delete()
            db.commit()

        courses = build_catalog()
        db.add_all(courses)
        db.commit()

        print("=" * 60)
        print(f"  Seeded {len(courses)} courses")
        print(f"  Branches:     {', '.join(BRANCHES)}")
        print(f"  Technologies: {', '.join(TECHNOLOGIES)}")
        print(f"  Programs:     {', '.join(PROGRAMS)}")
        print("=" * 60)
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the course catalog with demo data.")
    parser.add_argument("--force", action="store_true", help="Wipe existing courses before seeding.")
    parser.add_argument("--database-url", help="Database URL (defaults to local DB from .env)")
    args = parser.parse_args()

    if args.database_url:
        print(f"Targeting: {args.database_url.split('@')[-1] if '@' in args.database_url else args.database_url}")
        confirm = input("This will write to an external database. Continue? [y/N] ")
        if confirm.lower() != "y":
            print("Aborted.")
            sys.exit(0)

    seed(force=args.force, database_url=args.database_url)
