# Services package.
#
# Each module exposes async functions that encapsulate the queries and
# result shaping for one part of the blog:
#
#   post_service     : listing, detail, likes, tags, authoring
#   comment_service  : two-level comment threads
#   user_service     : identity lookups (cache-aside), login, registration
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  Identity functions also take the ``UserCache``
# they should read through.
