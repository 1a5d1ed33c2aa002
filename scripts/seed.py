"""Database seeder for local development and load testing."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta
from sqlalchemy import select
from blog_service.database import Base, Database
from blog_service.models import User, Post, PostTag, PostLike, Comment, Tag
from blog_service.security import hash_credential

TAGS = ["python", "fastapi", "postgresql", "redis", "docker", "kubernetes",
        "react", "typescript", "aws", "devops", "testing", "performance",
        "security", "microservices", "graphql", "rest-api"]

CATEGORIES = {1: "backend", 2: "frontend", 3: "infrastructure", 4: "databases", 5: "career"}

# Every seeded account shares this credential
SEED_PASSWORD = "password"


async def seed(small: bool = False, url: str | None = None):
    num_users = 10 if small else 50
    num_posts = 100 if small else 10000
    num_comments_per_post = 3 if small else 6

    print(f"Seeding: {num_users} users, {num_posts} posts, ~{num_posts * num_comments_per_post} comments")
    start = time.perf_counter()

    database = Database.from_url(url)
    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with database.session_factory() as session:
        # Create tags
        tags = [Tag(name=name) for name in TAGS]
        session.add_all(tags)
        await session.flush()
        print(f"  Created {len(tags)} tags")

        # Create users, all sharing one credential hash
        password_hash = hash_credential(SEED_PASSWORD)
        users = []
        for i in range(num_users):
            user = User(
                email=f"user_{i:04d}@example.com",
                nickname=f"user_{i:04d}",
                password=password_hash,
            )
            session.add(user)
            users.append(user)
        await session.flush()
        print(f"  Created {len(users)} users")

        # Create posts in batches
        batch_size = 500
        total_comments = 0
        total_likes = 0
        for batch_start in range(0, num_posts, batch_size):
            batch_end = min(batch_start + batch_size, num_posts)
            posts = []
            for i in range(batch_start, batch_end):
                days_ago = random.randint(0, 365)
                created = datetime.now(timezone.utc) - timedelta(days=days_ago, seconds=i)
                author = random.choice(users)
                category_id = random.choice(list(CATEGORIES))
                post = Post(
                    title=f"Post {i}: How to optimize {random.choice(TAGS)} applications",
                    category_id=category_id,
                    category_name=CATEGORIES[category_id],
                    content=f"<p>This is the full content of post {i}.</p> " * 20,
                    author_id=author.id,
                    author_name=author.nickname,
                    view_count=random.randint(0, 10000),
                    created_at=created,
                )
                session.add(post)
                posts.append(post)
            await session.flush()

            for post in posts:
                # 1-4 random tags
                for tag in random.sample(tags, k=random.randint(1, 4)):
                    session.add(PostTag(post_id=post.id, tag_id=tag.id))
                # Likes from distinct users
                for liker in random.sample(users, k=random.randint(0, min(5, len(users)))):
                    session.add(PostLike(user_id=liker.id, post_id=post.id))
                    total_likes += 1
            await session.flush()

            # Threads: a top-level comment, a reply, and a reply to the reply
            for post in posts:
                for _ in range(random.randint(1, num_comments_per_post) // 3 + 1):
                    top = _comment(post, random.choice(users), post.created_at, "Great post!")
                    session.add(top)
                    await session.flush()
                    reply = _comment(post, random.choice(users), top.created_at, "Agreed.", parent=top)
                    session.add(reply)
                    await session.flush()
                    session.add(_comment(
                        post, random.choice(users), reply.created_at, "Same here.",
                        parent=reply, root=top,
                    ))
                    total_comments += 3
            await session.flush()

            print(f"  Batch {batch_start}-{batch_end}: posts created")

        await session.commit()

        # Sanity check
        post_count = len((await session.execute(select(Post.id))).all())

    await database.dispose()

    elapsed = time.perf_counter() - start
    print(f"\nSeeding complete in {elapsed:.1f}s")
    print(f"  Users: {num_users} (password: {SEED_PASSWORD!r})")
    print(f"  Posts: {post_count}")
    print(f"  Likes: {total_likes}")
    print(f"  Comments: {total_comments}")
    print(f"  Tags: {len(TAGS)}")


def _comment(post, user, after, content, parent=None, root=None):
    return Comment(
        post_id=post.id,
        user_id=user.id,
        user_name=user.nickname,
        parent_id=parent.id if parent else None,
        parent_grand_id=root.id if root else None,
        content=content,
        created_at=after + timedelta(minutes=random.randint(1, 600)),
    )


def main():
    parser = argparse.ArgumentParser(description="Seed the blog database")
    parser.add_argument("--small", action="store_true", help="Use small dataset (100 posts)")
    parser.add_argument("--url", default=None, help="Database URL (defaults to DATABASE_URL)")
    args = parser.parse_args()
    asyncio.run(seed(small=args.small, url=args.url))


if __name__ == "__main__":
    main()
