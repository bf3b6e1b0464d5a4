"""Allow ``python -m safety_net``."""

from safety_net.hook import main

if __name__ == "__main__":
    main()
