# Marks `rentalstock.deps` as a package so `from rentalstock.deps.auth import get_actor` resolves.
