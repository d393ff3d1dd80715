from groupstream_observability.server import main

if __name__ == "__main__":
    main()
