# Offline core: review scheduling, sync queue and helpers
