from duckchat.main import main

main()
