VERSION = "0.1.0"
SOCKPROXY = "sockproxy " + VERSION


if __name__ == "__main__":  # pragma: no cover
    print(VERSION)
