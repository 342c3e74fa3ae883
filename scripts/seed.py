"""Database seeder for local development.

Everything is created through the service layer, so the seeded data has
the same back-references a real request sequence would leave behind.
"""
import asyncio
import argparse
import random
import time

from app.database import engine, async_session, Base, create_schema
from app.schemas import CategoryCreate, CommentCreate, PostCreate, TagCreate, UserCreate
from app.services import category_service, comment_service, post_service, tag_service, user_service
from app.store import EntityStore

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

CATEGORIES = ["Engineering", "Tutorials", "Opinion", "News"]

async def seed(small: bool = False):
    num_users = 5 if small else 25
    num_posts = 20 if small else 500
    max_comments_per_post = 3 if small else 6

    print(f"Seeding: {num_users} users, {num_posts} posts, up to {max_comments_per_post} comments per post")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await create_schema()

    store = EntityStore(async_session)

    # Create taxonomy
    tag_ids = [(await tag_service.create_tag(store, TagCreate(name=name))).data["id"] for name in TAGS]
    category_ids = [
        (await category_service.create_category(store, CategoryCreate(name=name))).data["id"]
        for name in CATEGORIES
    ]
    print(f"  Created {len(tag_ids)} tags and {len(category_ids)} categories")

    # Create users
    user_ids = []
    for i in range(num_users):
        result = await user_service.create_user(store, UserCreate(
            username=f"user_{i:04d}",
            email=f"user_{i:04d}@example.com",
            password_hash="!seeded",
            first_name="User",
            last_name=str(i),
        ))
        user_ids.append(result.data["id"])
    print(f"  Created {len(user_ids)} users")

    # Create posts with threaded comments
    total_comments = 0
    for i in range(num_posts):
        topic = random.choice(TAGS)
        post = await post_service.create_post(
            store,
            PostCreate(
                title=f"Post {i}: How to optimize {topic} applications",
                content=f"This is the full content of post {i}. " * 20,
                category_id=random.choice(category_ids + [None]),
                tag_ids=random.sample(tag_ids, k=random.randint(0, 4)),
            ),
            random.choice(user_ids),
        )
        thread: list[int] = []
        for _ in range(random.randint(0, max_comments_per_post)):
            # Roughly half of the comments reply to an earlier one.
            parent = random.choice(thread) if thread and random.random() < 0.5 else None
            comment = await comment_service.create_comment(
                store,
                CommentCreate(content=f"Comment on {topic}", post_id=post.data["id"], parent_comment_id=parent),
                random.choice(user_ids),
            )
            thread.append(comment.data["id"])
        total_comments += len(thread)

        if (i + 1) % 100 == 0:
            print(f"  {i + 1} posts created")

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users}")
    print(f"  Posts: {num_posts}")
    print(f"  Comments: {total_comments}")
    print(f"  Tags: {len(TAGS)}")
    print(f"  Categories: {len(CATEGORIES)}")


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (20 posts)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small))


if __name__ == "__main__":
    main()
