# Services package.
#
# Each module exposes a focused set of async functions:
#
#   like_ledger          the likes table: record/remove/count/list
#   content_registry     likeable rows and their atomic like counters
#   like_service         toggle coordinator, like status and statistics
#   consistency_service  counter audit, resync and orphan cleanup
#   cascade_service      user/content/comment deletion cascades
#   publication_service  CRUD + pagination + cache for articles/reviews
#   comment_service      comment creation and thread listing
#   user_service         CRUD for User
#
# All service functions accept an AsyncSession as their first argument.
# The router layer owns the transaction boundary via ``get_db``, except
# for user deletion, which commits after every cascade step.
