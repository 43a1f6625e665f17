# Scheduling services
